"""Tests for the heuristic ordinance content validator."""

from opradraft.ingestion.validator import confidence_tier, is_search_results_stub, validate_ordinance_content

FILLER = "The landlord shall register each dwelling unit with the board. " * 40


class TestValidateOrdinanceContent:
    def test_empty_content_is_low(self):
        result = validate_ordinance_content("")
        assert result.is_valid is False
        assert result.confidence == "low"
        assert result.score == 0
        assert any("too short" in issue for issue in result.issues)

    def test_full_ordinance_scores_high(self):
        content = "Rent control ordinance. Section 5 applies to all units. " + "x" * 2500
        result = validate_ordinance_content(content)
        assert result.score == 100
        assert result.confidence == "high"
        assert result.is_valid is True
        assert result.issues == []

    def test_search_results_stub_is_rejected(self):
        result = validate_ordinance_content("search results — no results found")
        assert result.is_valid is False
        assert result.confidence == "low"
        assert any("search results" in issue for issue in result.issues)

    def test_suspicious_marker_forfeits_bonus(self):
        content = "Rent control. Chapter 12. " + FILLER + " Page not found"
        result = validate_ordinance_content(content)
        assert result.score == 90
        assert any("page not found" in issue for issue in result.issues)

    def test_medium_without_structure(self):
        content = "Rent stabilization applies to apartments. " + FILLER
        result = validate_ordinance_content(content)
        assert result.score == 60
        assert result.confidence == "medium"
        assert result.is_valid is True

    def test_deterministic(self):
        content = "Rent regulation § 4 " + FILLER
        assert validate_ordinance_content(content) == validate_ordinance_content(content)


class TestConfidenceTier:
    def test_boundaries(self):
        assert confidence_tier(81) == "high"
        assert confidence_tier(80) == "medium"
        assert confidence_tier(51) == "medium"
        assert confidence_tier(50) == "low"


class TestSearchResultsStub:
    def test_detects_listing(self):
        assert is_search_results_stub("Showing Search Results for rent")

    def test_normal_text(self):
        assert not is_search_results_stub("§ 1 Definitions")
