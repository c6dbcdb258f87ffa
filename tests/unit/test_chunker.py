"""Tests for the structure-aware ordinance chunker."""

import pytest

from opradraft.ingestion.chunker import OrdinanceChunker, _overlap_tail, chunk_ordinance

TWO_SECTIONS = (
    "§ 1 - Definitions\n\nAs used in this chapter, 'rent control' means...\n\n"
    "§ 2 - Rent Increases\n\nNo landlord shall increase rent by more than 5% annually."
)


def _long_section(paragraphs: int = 12) -> str:
    body = "\n\n".join(
        f"Paragraph {i} sentence one is here. Paragraph {i} sentence two ends here."
        for i in range(paragraphs)
    )
    return f"§ 3 - Rent Increases\n\n{body}"


class TestSectionDetection:
    def test_two_sections_two_chunks(self):
        chunks = chunk_ordinance(TWO_SECTIONS, max_size=1500)
        assert len(chunks) == 2
        assert [c.metadata.section_number for c in chunks] == ["1", "2"]
        assert [c.metadata.chunk_index for c in chunks] == [0, 1]

    def test_section_titles_and_rendering(self):
        chunks = chunk_ordinance(TWO_SECTIONS)
        assert chunks[0].metadata.section_title == "Definitions"
        assert chunks[1].text.startswith("§ 2 - Rent Increases\n\n")
        assert "5% annually" in chunks[1].text

    def test_section_keyword_headers(self):
        text = "Section 4 - Board\n\nThe board shall meet monthly.\n\nSection 5 - Fees\n\nFees are set by rule."
        chunks = chunk_ordinance(text)
        assert [c.metadata.section_number for c in chunks] == ["4", "5"]
        assert chunks[0].metadata.section_title == "Board"

    def test_offsets_point_at_section_start(self):
        chunks = chunk_ordinance(TWO_SECTIONS)
        for chunk in chunks:
            start, end = chunk.metadata.start_char, chunk.metadata.end_char
            assert TWO_SECTIONS[start:end].startswith("§")
            assert start < end

    def test_preamble_is_kept_unlabeled(self):
        text = "CHAPTER 12 RENT CONTROL\n\n" + TWO_SECTIONS
        chunks = chunk_ordinance(text)
        assert len(chunks) == 3
        assert chunks[0].metadata.section_number is None
        assert chunks[0].text == "CHAPTER 12 RENT CONTROL"
        assert chunks[1].metadata.section_number == "1"

    def test_no_structure_falls_back_to_paragraphs(self):
        text = "Rents are regulated here.\n\nLandlords must register units."
        chunks = chunk_ordinance(text)
        assert len(chunks) == 1
        assert chunks[0].metadata.section_number is None
        assert "register units" in chunks[0].text

    def test_empty_text(self):
        assert chunk_ordinance("") == []


class TestOversizedSections:
    def test_long_section_splits(self):
        chunks = chunk_ordinance(_long_section(), max_size=300, overlap=100)
        assert len(chunks) >= 2
        assert all(c.metadata.section_number == "3" for c in chunks)
        assert [c.metadata.chunk_index for c in chunks] == list(range(len(chunks)))

    def test_chunks_stay_near_max_size(self):
        chunks = chunk_ordinance(_long_section(), max_size=300, overlap=100)
        for chunk in chunks:
            assert len(chunk.text) <= 300 + 100 + len("§ 3 (continued)\n\n")

    def test_continuation_header_and_overlap(self):
        chunks = chunk_ordinance(_long_section(), max_size=300, overlap=100)
        assert chunks[0].text.startswith("§ 3 - Rent Increases")
        assert chunks[1].text.startswith("§ 3 (continued)\n\n")
        last_sentence = chunks[0].text.rsplit("Paragraph", 1)[1]
        assert ("Paragraph" + last_sentence) in chunks[1].text

    def test_all_paragraphs_covered(self):
        chunks = chunk_ordinance(_long_section(), max_size=300, overlap=100)
        joined = "\n".join(c.text for c in chunks)
        for i in range(12):
            assert f"Paragraph {i} sentence two ends here." in joined


def _sentences(n: int, tag: str) -> str:
    return " ".join(f"The {tag} clause {i} binds every landlord in the township." for i in range(n))


MIXED_INPUTS = {
    "preamble_and_sections": (
        "An ordinance to regulate rents within the township.\n\n"
        + _sentences(3, "preamble")
        + "\n\n§ 1 - Definitions\n\nRent control means the regulation of rents.\n\n"
        + "§ 2 - Rent Increases\n\n"
        + "\n\n".join(_sentences(2, f"increase {i}") for i in range(8))
        + "\n\n§ 3 - Fees\n\nA filing fee of $25 applies."
    ),
    "oversized_paragraph": (
        "Section 1 - Registration\n\n" + _sentences(30, "registration")
        + "\n\nSection 2 - Appeals\n\nAppeals go to the board."
    ),
    "no_sentence_ends": "§ 4 - Schedule\n\n" + " ".join(f"unit{i} rent{i}" for i in range(120)),
    "enumerated": "1. Definitions\n\n" + _sentences(4, "definition") + "\n\n2. Board\n\n" + _sentences(12, "board"),
    "plain_text": "\n\n".join(_sentences(3, f"paragraph {i}") for i in range(10)),
    "crlf": "§ 5 - Registration\r\n\r\n" + "\r\n\r\n".join(_sentences(2, f"filing {i}") for i in range(10)),
}


class TestCoverage:
    """Chunks cover the source text in order, with bounded gaps and bounded size."""

    MAX_SIZE = 300
    OVERLAP = 80
    # Header or "(continued)" label plus the overlap tail
    PREFIX_OVERHEAD = OVERLAP + 40

    @pytest.mark.parametrize("name", sorted(MIXED_INPUTS))
    def test_offsets_cover_text(self, name):
        text = MIXED_INPUTS[name]
        chunks = chunk_ordinance(text, max_size=self.MAX_SIZE, overlap=self.OVERLAP)

        assert [c.metadata.chunk_index for c in chunks] == list(range(len(chunks)))
        assert chunks[0].metadata.start_char <= self.OVERLAP
        assert chunks[-1].metadata.end_char >= len(text.rstrip()) - self.OVERLAP
        for prev, cur in zip(chunks, chunks[1:]):
            assert cur.metadata.start_char >= prev.metadata.start_char
            assert cur.metadata.start_char - prev.metadata.end_char <= self.OVERLAP

    @pytest.mark.parametrize("name", sorted(MIXED_INPUTS))
    def test_size_bound(self, name):
        chunks = chunk_ordinance(MIXED_INPUTS[name], max_size=self.MAX_SIZE, overlap=self.OVERLAP)
        assert len(chunks) >= 2
        for chunk in chunks:
            assert len(chunk.text) <= self.MAX_SIZE + self.PREFIX_OVERHEAD
            assert chunk.metadata.start_char <= chunk.metadata.end_char

    def test_oversized_paragraph_split_at_sentence_ends(self):
        chunks = chunk_ordinance(MIXED_INPUTS["oversized_paragraph"], max_size=self.MAX_SIZE, overlap=self.OVERLAP)
        registration = [c for c in chunks if c.metadata.section_number == "1"]
        assert len(registration) >= 2
        assert all(c.text.endswith("township.") for c in registration)
        assert registration[1].text.startswith("Section 1 (continued)\n\n")


class TestEnumeratedHeaders:
    def test_bare_numbers_are_sections(self):
        chunks = chunk_ordinance(
            "1. Definitions\n\nRent control means the regulation of rents.\n\n"
            "2. Rent Increases\n\nNo landlord shall increase rent by more than 5% annually."
        )
        assert [c.metadata.section_number for c in chunks] == ["1", "2"]
        assert [c.metadata.section_title for c in chunks] == ["Definitions", "Rent Increases"]
        assert chunks[0].text.startswith("§ 1 - Definitions\n\n")


class TestLineEndings:
    def test_crlf_paragraphs_are_split_at_breaks(self):
        chunks = chunk_ordinance(MIXED_INPUTS["crlf"], max_size=300, overlap=80)
        assert len(chunks) >= 2
        assert all("\r\n\r\n" not in c.text for c in chunks)
        assert all(c.text.endswith("township.") for c in chunks)
        assert all(len(c.text) <= 300 + 120 for c in chunks)


class TestOverlapTail:
    def test_whole_sentences_only(self):
        tail = _overlap_tail("First sentence here. Second one. Third one.", 25)
        assert tail == "Second one. Third one."

    def test_zero_size(self):
        assert _overlap_tail("Some text.", 0) == ""

    def test_no_sentence_boundary_uses_word_boundary(self):
        tail = _overlap_tail("alpha beta gamma delta epsilon", 12)
        assert tail == "epsilon"
        assert len(tail) <= 12


class TestChunkerConfig:
    def test_rejects_non_positive_max_size(self):
        with pytest.raises(ValueError):
            OrdinanceChunker(max_size=0)

    def test_rejects_overlap_not_below_max(self):
        with pytest.raises(ValueError):
            OrdinanceChunker(max_size=100, overlap=100)
