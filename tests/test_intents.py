"""Tests for command, greeting, yes/no and status-query detection."""

import pytest

from demand_intake.conversation import intents


class TestCommands:
    @pytest.mark.parametrize("text", ["cancelar", "CANCELAR", " Cancela! ", "sair"])
    def test_cancel(self, text):
        assert intents.is_cancel(text)

    def test_cancel_must_be_the_whole_message(self):
        assert not intents.is_cancel("quero cancelar meu pedido de poda")

    @pytest.mark.parametrize("text", ["menu", "Ajuda", "help?"])
    def test_menu(self, text):
        assert intents.is_menu(text)


class TestGreetings:
    @pytest.mark.parametrize("text", ["oi", "Olá!", "bom dia", "Boa tarde, tudo bem?", "e aí"])
    def test_greetings(self, text):
        assert intents.is_greeting(text)

    def test_word_starting_with_greeting(self):
        assert not intents.is_greeting("oito postes apagados")


class TestYesNo:
    @pytest.mark.parametrize("text", ["sim", "Sim!", "pode sim", "ok", "claro, tenta de novo"])
    def test_affirmative(self, text):
        assert intents.is_affirmative(text)

    @pytest.mark.parametrize("text", ["não", "Nao quero", "n", "errado"])
    def test_negative(self, text):
        assert intents.is_negative(text)
        assert not intents.is_affirmative(text)

    def test_neither(self):
        assert not intents.is_affirmative("talvez depois")
        assert not intents.is_negative("talvez depois")


class TestStatusQueries:
    def test_status_phrases(self):
        assert intents.is_status_query("quero saber a situação da minha demanda")
        assert intents.is_status_query("Já resolveram?")

    def test_plain_report_is_not_a_query(self):
        assert not intents.is_status_query("tem um buraco na rua")

    @pytest.mark.parametrize("text, protocol", [
        ("202601-ABC123", "202601-ABC123"),
        ("meu protocolo é 202601-abc123, consegue ver?", "202601-ABC123"),
        ("protocolo 202601-ABC12", None),
        ("20260-ABC123", None),
    ])
    def test_extract_protocol(self, text, protocol):
        assert intents.extract_protocol(text) == protocol


class TestAcknowledgments:
    @pytest.mark.parametrize("text", ["obrigado", "Valeu!", "beleza, aguardo"])
    def test_small_talk(self, text):
        assert intents.is_acknowledgment(text)

    def test_report_is_not_small_talk(self):
        assert not intents.is_acknowledgment("poste apagado")


class TestAudioRequests:
    @pytest.mark.parametrize("text", ["me manda um áudio", "Responde por audio, por favor", "não consigo ler"])
    def test_audio_requested(self, text):
        assert intents.wants_audio_reply(text)

    def test_plain_report(self):
        assert not intents.wants_audio_reply("tem um buraco na rua")
