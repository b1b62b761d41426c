"""Citizen-facing reply wording and deterministic variant selection.

Every outbound sentence the engine composes lives here, so wording can be
reviewed in one place. Variant pools are indexed by a situation key and an
explicit seed, never by a random draw, which keeps replies reproducible.
"""

import zlib
from datetime import datetime
from typing import Optional, Sequence

from demand_intake.config import settings
from demand_intake.schemas.ticket_schema import TicketState, TicketStatus

_bot = settings.bot

MISSING_PHOTO = "photo"
MISSING_LOCATION = "location"
MISSING_DESCRIPTION = "description"
GENERAL = "general"

STATUS_LABELS: dict[TicketState, str] = {
    TicketState.OPEN: "Aberta - Aguardando análise",
    TicketState.IN_PROGRESS: "Em Andamento - Equipe trabalhando",
    TicketState.PENDING: "Pendente - Aguardando recursos",
    TicketState.WAITING_INFO: "Aguardando Informação",
    TicketState.FORWARDED: "Encaminhada para outro setor",
    TicketState.RESOLVED: "Resolvida",
    TicketState.CLOSED: "Fechada",
    TicketState.CANCELLED: "Cancelada",
}

HISTORY_ACTIONS: dict[str, str] = {
    "CREATED": "Demanda registrada",
    "STATUS_CHANGED": "Status atualizado",
    "ASSIGNED": "Atribuída a responsável",
    "COMMENT_ADDED": "Comentário adicionado",
    "FORWARDED": "Encaminhada",
    "RESOLVED": "Marcada como resolvida",
    "REOPENED": "Reaberta",
}

ACKNOWLEDGMENTS = ["Entendi!", "Anotado!", "Certo!", "Beleza!", "Peguei!"]

MISSING_ITEM_PROMPTS: dict[str, list[str]] = {
    MISSING_PHOTO: [
        "Pode me mandar uma foto do problema?",
        "Consegue tirar uma foto do local e me enviar?",
        "Me manda uma foto pra eu registrar, por favor?",
    ],
    MISSING_LOCATION: [
        "Onde fica isso? Pode mandar o endereço ou compartilhar a localização.",
        "Qual o endereço do local? Se preferir, compartilha a localização pelo WhatsApp.",
        "Me diz a rua e o bairro, ou manda a localização?",
    ],
    MISSING_DESCRIPTION: [
        "Me conta, qual é o problema?",
        "O que está acontecendo no local?",
        "Descreve pra mim o problema, por favor?",
    ],
}

VARIANTS: dict[str, list[str]] = {
    GENERAL: [
        "Me conta, qual problema você quer relatar?",
        "Posso te ajudar com algo? Me diz o que está acontecendo.",
        "Estou aqui pra ajudar! Qual a situação?",
    ],
    MISSING_DESCRIPTION: [
        "Já tenho o local. Agora me explica o que está acontecendo lá?",
        "Recebi! Só falta você me contar qual é o problema.",
        "Quase tudo pronto. Qual o problema que você quer registrar?",
    ],
    MISSING_LOCATION: [
        "Vi a foto! Agora me diz onde fica isso?",
        "Recebi a imagem. Qual o endereço do local?",
        "Entendi pela foto. Pode me passar o endereço ou compartilhar a localização?",
    ],
    MISSING_PHOTO: [
        "Quase lá! Só falta uma foto do problema pra eu registrar.",
        "Só preciso de uma foto pra finalizar o registro.",
        "Pode me mandar uma imagem do problema?",
    ],
}

STICKER_REPLIES = [
    "Haha, gostei! Em que posso te ajudar?",
    "Haha! Precisa de algo?",
    "Olá! Como posso ajudar hoje?",
]

CONFIRM_RETRY = (
    "Tive um problema ao registrar sua solicitação, mas guardei tudo aqui. "
    "Responda *SIM* para eu tentar de novo ou *NÃO* para recomeçar."
)
CONFIRM_REASK = "Não entendi. Posso tentar registrar de novo? Responda *SIM* ou *NÃO*."
DECLINED = "Tudo bem, descartei as informações. Quando quiser, é só me contar o problema."
CANCELLED = "Atendimento cancelado. Quando precisar, é só mandar mensagem!"
IDLE_WARNING = (
    "Faz um tempinho que não nos falamos, então vou encerrar este atendimento. "
    "Na sua próxima mensagem a gente começa do zero, tá bom?"
)
IDLE_RESTART = "Como ficamos um tempo sem conversar, recomecei o atendimento."
ASK_PROTOCOL = (
    "Me passa o número do protocolo? O formato é tipo 202601-ABC123. "
    "Se quiser registrar um problema novo, digite *cancelar* e me conte."
)
LOOKUP_FAILED = "Desculpa, tive um probleminha ao consultar. Pode tentar novamente em alguns segundos?"
GENERIC_FAILURE = "Desculpa, tive um probleminha aqui. Pode repetir o que você disse?"
UNSUPPORTED = "Não consegui processar esse tipo de mensagem. Pode me mandar por texto?"
DOCUMENT = (
    "Recebi o documento{caption}. No momento só consigo analisar imagens, "
    "vídeos e áudios. Pode descrever por texto o que você precisa?"
)
MEDIA_MISSING = "Não consegui receber o arquivo. Pode enviar de novo?"
VIDEO_TOO_LARGE = "O vídeo ficou grande demais pra mim. Consegue mandar um mais curto ou uma foto?"
LOCATION_MISSING = "Não consegui pegar a localização. Pode tentar de novo ou digitar o endereço?"


def select_variant(options: Sequence[str], situation: str, seed: int) -> str:
    """Pick one option deterministically from a situation key and a seed."""
    if not options:
        raise ValueError("select_variant needs at least one option")
    index = (zlib.crc32(situation.encode("utf-8")) + seed) % len(options)
    return options[index]


def day_period(now: datetime) -> str:
    hour = now.hour
    if 5 <= hour < 12:
        return "Bom dia"
    if 12 <= hour < 18:
        return "Boa tarde"
    return "Boa noite"


def greeting(now: datetime, display_name: Optional[str] = None) -> str:
    """Persona introduction sent once per session."""
    name = f", {display_name}" if display_name else ""
    return (
        f"{day_period(now)}{name}! Aqui é a {_bot.persona_name}, "
        f"da {_bot.secretariat} de {_bot.city}."
    )


def help_menu() -> str:
    return (
        f"Sou a {_bot.persona_name}, da {_bot.secretariat} de {_bot.city}. "
        "Posso te ajudar com:\n\n"
        "*Registrar problema* - Me conta o que está acontecendo "
        "(buraco, poste apagado, lixo, poda, bueiro, etc)\n\n"
        "*Consultar protocolo* - Digite \"consultar\" ou me envie o número "
        "do protocolo pra saber o status da sua demanda\n\n"
        "Pra registrar uma nova solicitação, preciso de:\n"
        "- Descrição do problema\n"
        "- Endereço ou localização\n"
        "- Uma foto do problema\n\n"
        "No que posso te ajudar?"
    )


def missing_item_prompt(item: str, seed: int) -> str:
    return select_variant(MISSING_ITEM_PROMPTS[item], item, seed)


def acknowledgment(seed: int) -> str:
    return select_variant(ACKNOWLEDGMENTS, "ack", seed)


def location_ack(address_text: Optional[str], neighborhood: Optional[str]) -> str:
    if address_text:
        place = address_text
        if neighborhood and neighborhood not in address_text:
            place += f" ({neighborhood})"
        return f"Localização registrada: {place}."
    return "Localização registrada!"


def ticket_created(protocol: str, category: str, address: Optional[str]) -> str:
    lines = [
        "Pronto! Sua solicitação foi registrada.",
        "",
        f"*Protocolo:* {protocol}",
        f"*Tipo:* {category}",
    ]
    if address:
        lines.append(f"*Local:* {address}")
    lines += [
        "",
        "Guarde esse número pra acompanhar o andamento. "
        "É só me mandar o protocolo quando quiser saber o status.",
    ]
    return "\n".join(lines)


def ticket_not_found(protocol: str) -> str:
    return (
        f"Não encontrei nenhuma demanda com o protocolo *{protocol}*.\n\n"
        "Verifica se digitou certinho? O formato é tipo 202601-ABC123.\n\n"
        "Se precisar registrar uma nova demanda, é só me contar o problema!"
    )


def ticket_status(status: TicketStatus) -> str:
    """Format a status lookup answer."""
    place = status.address_text or status.neighborhood or "Não informado"
    lines = [
        "*Consulta de Protocolo*",
        "",
        f"*Protocolo:* {status.protocol}",
        f"*Problema:* {status.title}",
        f"*Local:* {place}",
        f"*Status:* {STATUS_LABELS.get(status.state, status.state.value)}",
        f"*Responsável:* {status.secretariat}",
        f"*Registrada em:* {status.created_at.strftime('%d/%m/%Y')}",
    ]
    if status.resolved_at:
        lines.append(f"*Resolvida em:* {status.resolved_at.strftime('%d/%m/%Y')}")
    if status.history:
        lines += ["", "*Últimas atualizações:*"]
        for entry in status.history[:3]:
            action = HISTORY_ACTIONS.get(entry.action, entry.action)
            line = f"- {entry.at.strftime('%d/%m/%Y')}: {action}"
            if entry.actor:
                line += f" ({entry.actor})"
            lines.append(line)
    lines += ["", "Precisa de mais alguma coisa?"]
    return "\n".join(lines)


def document_reply(caption: Optional[str]) -> str:
    return DOCUMENT.format(caption=f' "{caption}"' if caption else "")
