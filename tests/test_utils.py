"""Tests for shared utility functions."""

from demand_intake.utils import (
    contains_any,
    first_words,
    fold,
    sender_id_from_jid,
    split_message,
    strip_accents,
)


class TestSenderIdFromJid:
    def test_strips_whatsapp_suffix(self):
        assert sender_id_from_jid("5584999990000@s.whatsapp.net") == "5584999990000"

    def test_strips_device_part(self):
        assert sender_id_from_jid("5584999990000:12@s.whatsapp.net") == "5584999990000"

    def test_strips_legacy_suffix(self):
        assert sender_id_from_jid("5584999990000@c.us") == "5584999990000"

    def test_bare_number_unchanged(self):
        assert sender_id_from_jid("  5584999990000 ") == "5584999990000"


class TestFolding:
    def test_strip_accents(self):
        assert strip_accents("iluminação pública") == "iluminacao publica"

    def test_fold_lowercases_and_trims(self):
        assert fold("  Calçada QUEBRADA ") == "calcada quebrada"

    def test_contains_any_ignores_accents(self):
        assert contains_any("A lâmpada do poste queimou", ["lampada"])

    def test_contains_any_no_match(self):
        assert not contains_any("bom dia", ["buraco", "lixo"])


class TestSplitMessage:
    def test_short_text_is_one_chunk(self):
        assert split_message("oi", 100) == ["oi"]

    def test_cuts_at_spaces(self):
        chunks = split_message("uma frase bem comprida para dividir", 12)
        assert all(len(c) <= 12 for c in chunks)
        assert " ".join(chunks) == "uma frase bem comprida para dividir"

    def test_prefers_line_breaks(self):
        chunks = split_message("primeira linha\nsegunda linha", 20)
        assert chunks == ["primeira linha", "segunda linha"]

    def test_hard_cut_without_spaces(self):
        assert split_message("a" * 25, 10) == ["a" * 10, "a" * 10, "a" * 5]


class TestFirstWords:
    def test_takes_leading_words(self):
        assert first_words("poste apagado na rua principal do bairro", 3, 60) == "poste apagado na"

    def test_truncates_long_titles(self):
        title = first_words("palavra" * 20, 8, 20)
        assert len(title) == 20
        assert title.endswith("...")
