"""Tests for the category catalog and text heuristics."""

import pytest

from demand_intake.schemas.extraction_schema import Urgency
from demand_intake.tools.categories import (
    classify_by_keywords,
    detect_urgency,
    extract_street,
    find_neighborhood,
    has_demand_signal,
    names_a_problem,
    resolve_category,
)


class TestClassifyByKeywords:
    def test_single_category(self):
        name, confidence, matched = classify_by_keywords("a lâmpada do poste queimou")
        assert name == "Iluminação Pública"
        assert matched == ["poste", "lampada"]
        assert confidence == pytest.approx(0.6)

    def test_most_matches_wins(self):
        name, _, _ = classify_by_keywords("bueiro entupido na rua, água por todo lado")
        assert name == "Drenagem e Esgoto"

    def test_no_match_is_default(self):
        assert classify_by_keywords("preciso de ajuda") == ("Outros", 0.3, [])

    def test_confidence_is_capped(self):
        _, confidence, _ = classify_by_keywords("buraco cratera asfalto pavimento rua avenida")
        assert confidence == pytest.approx(0.9)


class TestDemandSignal:
    @pytest.mark.parametrize("text", [
        "tem um buraco enorme aqui na frente",
        "o mato tá alto demais na praça",
        "moro na rua Ceará e ninguém resolve isso",
    ])
    def test_demand_texts(self, text):
        assert has_demand_signal(text)

    @pytest.mark.parametrize("text", ["oi", "buraco", "bom dia, tudo bem com você?"])
    def test_non_demand_texts(self, text):
        assert not has_demand_signal(text)


class TestNamesAProblem:
    @pytest.mark.parametrize("text", ["poste apagado", "Buracos!", "lixo", "bueiro entupido", "calçada quebrada"])
    def test_short_problem_texts(self, text):
        assert names_a_problem(text)

    @pytest.mark.parametrize("text", ["oi", "obrigado", "na Rua Ceará", "quero saber do protocolo"])
    def test_other_texts(self, text):
        assert not names_a_problem(text)


class TestUrgency:
    def test_critical(self):
        assert detect_urgency("Perigo! Fio solto no chão") == Urgency.CRITICAL

    def test_high(self):
        assert detect_urgency("está assim faz semanas") == Urgency.HIGH

    def test_default_medium(self):
        assert detect_urgency("poste apagado") == Urgency.MEDIUM


class TestExtractStreet:
    def test_street_with_number(self):
        assert extract_street("buraco na Rua das Acácias, 120, Centro") == "Rua das Acácias, 120"

    def test_stops_before_reference(self):
        assert extract_street("lixo na Avenida Brasil perto do mercado") == "Avenida Brasil"

    def test_abbreviated_avenue(self):
        assert extract_street("poste na Av. Ayrton Senna.") == "Av. Ayrton Senna"

    def test_no_street(self):
        assert extract_street("tem um buraco aqui") is None


class TestNeighborhood:
    def test_longest_name_wins(self):
        assert find_neighborhood("fica no Centro, quase em Passagem de Areia") == "Passagem de Areia"

    def test_accent_insensitive(self):
        assert find_neighborhood("lá no emaus") == "Emaús"

    def test_unknown(self):
        assert find_neighborhood("bairro que não existe") is None


class TestResolveCategory:
    @pytest.mark.parametrize("label, slug", [
        ("Iluminação Pública", "iluminacao-publica"),
        ("ILUMINACAO", "iluminacao-publica"),
        ("poda-de-arvores", "poda-de-arvores"),
        ("problema de esgoto", "drenagem-e-esgoto"),
        ("Outros", "outros"),
        (None, "outros"),
        ("algo estranho", "outros"),
    ])
    def test_labels(self, label, slug):
        assert resolve_category(label)["slug"] == slug

    def test_entry_has_sla(self):
        entry = resolve_category("PAVIMENTACAO")
        assert entry["name"] == "Tapa-buraco"
        assert entry["sla_days"] == 2
