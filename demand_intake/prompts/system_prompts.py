"""
Extraction prompts for the generative AI backend.

Each prompt asks for a single JSON object whose keys map onto
ExtractionResult. Persona and municipality names are injected from
configuration, not hardcoded.
"""

from typing import Optional

from demand_intake.config import settings

_bot = settings.bot

CATEGORY_CODES = "ILUMINACAO/PAVIMENTACAO/LIMPEZA/PODA/DRENAGEM/CALCADA/SINALIZACAO/ENTULHO/OUTROS"

PERSONA_CONTEXT = f"""Você é a {_bot.persona_name}, assistente virtual da {_bot.secretariat} \
(Secretaria de Serviços Urbanos) de {_bot.city}."""

SERVICES_HANDLED = """PROBLEMAS QUE ATENDEMOS:
- Buracos em ruas e calçadas
- Postes e lâmpadas apagados
- Lixo e entulho acumulado
- Árvores precisando de poda
- Bueiros entupidos e alagamentos
- Sinalização danificada
- Praças e áreas verdes abandonadas"""

REPLY_RULES = """REGRAS PARA O CAMPO "resposta":
- Nunca use emojis
- Linguagem informal mas educada, no máximo duas frases
- Pergunte uma coisa de cada vez e não repita perguntas já feitas"""

TEXT_SCHEMA = f"""Responda APENAS em JSON:
{{
  "ehDemanda": true/false,
  "categoria": "{CATEGORY_CODES}",
  "descricao": "Descrição do problema ou null",
  "endereco": "Endereço se mencionado ou null",
  "bairro": "Bairro se mencionado ou null",
  "urgencia": "baixa/media/alta/critica",
  "resposta": "Resposta natural para o cidadão"
}}"""

IMAGE_SCHEMA = f"""Responda APENAS em JSON:
{{
  "descricao": "Descrição do problema que a imagem mostra",
  "ehDemanda": true/false,
  "categoria": "{CATEGORY_CODES}",
  "urgencia": "baixa/media/alta/critica",
  "enderecoVisivel": "Endereço se visível ou null",
  "bairro": "Bairro se visível ou null",
  "resposta": "Resposta natural para o cidadão"
}}"""

AUDIO_SCHEMA = f"""Responda APENAS em JSON:
{{
  "transcricao": "Transcrição exata do áudio",
  "ehDemanda": true/false,
  "categoria": "{CATEGORY_CODES}",
  "descricao": "Descrição do problema mencionado ou null",
  "endereco": "Endereço se mencionado ou null",
  "bairro": "Bairro se mencionado ou null",
  "urgencia": "baixa/media/alta/critica",
  "resposta": "Resposta natural para o cidadão"
}}"""

VIDEO_SCHEMA = f"""Responda APENAS em JSON:
{{
  "descricao": "Descrição do problema que o vídeo mostra",
  "transcricaoAudio": "Transcrição de falas no vídeo ou null",
  "ehDemanda": true/false,
  "categoria": "{CATEGORY_CODES}",
  "urgencia": "baixa/media/alta/critica",
  "endereco": "Endereço se visível ou mencionado ou null",
  "bairro": "Bairro se mencionado ou null",
  "resposta": "Resposta natural para o cidadão"
}}"""


def build_text_prompt(text: str, context_summary: str = "") -> str:
    """Prompt for a free-text citizen message."""
    return f"""{PERSONA_CONTEXT}

CONTEXTO: {context_summary or "Cidadão entrando em contato"}

MENSAGEM: "{text}"

Para registrar uma demanda precisamos de descrição do problema, endereço ou
localização e uma foto. Extraia apenas o que a mensagem informa.

{REPLY_RULES}

{TEXT_SCHEMA}"""


def build_image_prompt(caption: Optional[str] = None) -> str:
    caption_line = f'LEGENDA ENVIADA: "{caption}"\n\n' if caption else ""
    return f"""{PERSONA_CONTEXT}

{caption_line}TAREFA: Analise esta imagem e identifique o problema mostrado, se é um
serviço urbano que a secretaria resolve, a categoria, a urgência e qualquer
referência de localização visível.

{SERVICES_HANDLED}

{REPLY_RULES}

{IMAGE_SCHEMA}"""


def build_audio_prompt() -> str:
    return f"""{PERSONA_CONTEXT}

TAREFA: Transcreva este áudio exatamente como foi falado, tolerando sotaques e
expressões regionais, e identifique se é uma demanda de serviço urbano.

{REPLY_RULES}

{AUDIO_SCHEMA}"""


def build_video_prompt(caption: Optional[str] = None) -> str:
    caption_line = f'LEGENDA ENVIADA: "{caption}"\n\n' if caption else ""
    return f"""{PERSONA_CONTEXT}

{caption_line}TAREFA: Analise este vídeo, descreva o problema mostrado, transcreva falas
presentes e identifique categoria e urgência.

{SERVICES_HANDLED}

{REPLY_RULES}

{VIDEO_SCHEMA}"""
