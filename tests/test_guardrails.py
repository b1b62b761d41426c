"""Tests for the anti-repetition guardrail."""

from demand_intake.conversation.guardrails import dedupe, significant_words, similarity
from demand_intake.prompts.reply_templates import VARIANTS

PHOTO_PROMPT = "Pode me mandar uma foto do problema?"


class TestSimilarity:
    def test_significant_words_skip_short_ones(self):
        assert significant_words("Pode me mandar uma foto?") == {"pode", "mandar", "foto"}

    def test_identical_texts(self):
        assert similarity(PHOTO_PROMPT, PHOTO_PROMPT) == 1.0

    def test_unrelated_texts(self):
        assert similarity(PHOTO_PROMPT, "Qual o endereço do local?") == 0.0

    def test_empty_text(self):
        assert similarity("ok", PHOTO_PROMPT) == 0.0

    def test_ratio_uses_larger_set(self):
        # 3 shared words out of 4
        assert similarity(PHOTO_PROMPT, "Pode me mandar uma imagem do problema?") == 0.75


class TestRepetitionGuardrail:
    def test_fresh_reply_passes(self, guardrail):
        result = guardrail.check(PHOTO_PROMPT, ["Qual o endereço do local?"])
        assert result.passed is True

    def test_repeat_is_flagged(self, guardrail):
        result = guardrail.check(PHOTO_PROMPT, [PHOTO_PROMPT])
        assert result.passed is False
        assert result.violation_type == "repetition"
        assert result.similarity == 1.0

    def test_repeat_is_swapped_for_a_variant(self, guardrail):
        final = guardrail.dedupe(PHOTO_PROMPT, [PHOTO_PROMPT], "photo", seed=1)
        assert final != PHOTO_PROMPT
        assert final in VARIANTS["photo"]
        assert guardrail.check(final, [PHOTO_PROMPT]).passed

    def test_swap_is_deterministic(self, guardrail):
        picks = {guardrail.dedupe(PHOTO_PROMPT, [PHOTO_PROMPT], "photo", seed=2) for _ in range(5)}
        assert len(picks) == 1

    def test_seed_varies_the_pick(self, guardrail):
        recent = ["Me conta, qual é o problema?"]
        candidate = "Me conta, qual é o problema?"
        picks = {guardrail.dedupe(candidate, recent, "general", seed=s) for s in range(3)}
        assert len(picks) > 1

    def test_variant_also_avoids_history(self, guardrail):
        recent = [PHOTO_PROMPT, "Quase lá! Só falta uma foto do problema pra eu registrar."]
        final = guardrail.dedupe(PHOTO_PROMPT, recent, "photo", seed=0)
        assert final == "Só preciso de uma foto pra finalizar o registro."

    def test_unknown_situation_swaps_words(self, guardrail):
        text = "Beleza! Entendi tudo certinho agora"
        assert guardrail.dedupe(text, [text], "confirm") == "Certo! Anotei tudo certinho agora"

    def test_module_shortcut_passes_fresh_reply(self):
        assert dedupe(PHOTO_PROMPT, [], "photo") == PHOTO_PROMPT
