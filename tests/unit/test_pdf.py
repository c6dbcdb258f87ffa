"""Tests for PDF rendering of finalized requests."""

from datetime import date

from opradraft.core.types import CustodianInfo, MunicipalityInfo, OrdinanceInfo, RequestData
from opradraft.drafting.composer import RequestComposer
from opradraft.drafting.pdf import _markup, render_request_pdf


def _data(**kwargs) -> RequestData:
    defaults = {
        "municipality": MunicipalityInfo(name="Hoboken", county="Hudson", state="NJ"),
        "ordinance": OrdinanceInfo(title="Rent Leveling & Stabilization", code="Chapter 155"),
        "selected_categories": ["board-admin", "rules-regulations"],
        "records_summary": {"board-admin": ["Minutes <2024> & agendas"]},
        "request_number": "OPRA-2026-1019-0042",
    }
    defaults.update(kwargs)
    return RequestData(**defaults)


class TestRenderRequestPdf:
    def test_produces_pdf(self):
        data = _data()
        text = RequestComposer(today=lambda: date(2026, 10, 19)).compose(data)
        pdf = render_request_pdf(text, data, on=date(2026, 10, 19))
        assert pdf.startswith(b"%PDF")
        assert len(pdf) > 1000

    def test_with_custodian(self):
        data = _data(custodian=CustodianInfo(name="James Farina", email="clerk@hoboken.nj.us",
                                             address="94 Washington St, Hoboken, NJ"))
        pdf = render_request_pdf("1. **Board Administrative Records**\n\n   • Minutes\n", data)
        assert pdf.startswith(b"%PDF")

    def test_long_request_spans_pages(self):
        text = "\n".join(f"   • Record {i} requested under the ordinance" for i in range(200))
        short = render_request_pdf("   • Record 0", _data())
        pdf = render_request_pdf(text, _data())
        assert pdf.startswith(b"%PDF")
        assert len(pdf) > len(short)


class TestMarkup:
    def test_bold_and_escape(self):
        assert _markup("1. **Fees & Costs** <draft>") == "1. <b>Fees &amp; Costs</b> &lt;draft&gt;"
