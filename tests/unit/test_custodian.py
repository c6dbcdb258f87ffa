"""Tests for records-custodian lookup."""

import httpx
import pytest

from opradraft.core.errors import ProviderError
from opradraft.core.types import SearchHit
from opradraft.ingestion.custodian import extract_custodian_info, find_custodian

CLERK_PAGE = (
    "Municipal Clerk: James Farina\n"
    "Phone: (201) 420-2074\n"
    "Email: clerk@hoboken.nj.us.\n"
)


class FakeSearch:
    def __init__(self, hits=None, error=None):
        self.hits = hits or []
        self.error = error
        self.calls = []

    async def search(self, query, max_results=10, domain_allowlist=None):
        self.calls.append((query, max_results, domain_allowlist))
        if self.error:
            raise self.error
        return self.hits


class TestExtractCustodianInfo:
    def test_full_contact(self):
        info = extract_custodian_info(CLERK_PAGE)
        assert info.email == "clerk@hoboken.nj.us"
        assert info.phone == "(201) 420-2074"
        assert info.name == "James Farina"

    def test_default_name_when_absent(self):
        info = extract_custodian_info("Contact records@jerseycitynj.gov for OPRA requests")
        assert info.email == "records@jerseycitynj.gov"
        assert info.phone is None
        assert info.name == "Municipal Clerk"

    def test_nothing_usable(self):
        assert extract_custodian_info("The clerk's office is on the second floor.") is None


class TestFindCustodian:
    @pytest.mark.asyncio
    async def test_first_page_with_contact(self):
        search = FakeSearch([
            SearchHit(title="Clerk", url="https://hoboken.nj.us/about", content="No contact details here"),
            SearchHit(title="Clerk", url="https://hoboken.nj.us/clerk", content=CLERK_PAGE),
        ])
        info = await find_custodian(search, "Hoboken")

        assert info.email == "clerk@hoboken.nj.us"
        query, max_results, allowlist = search.calls[0]
        assert query == "Hoboken New Jersey municipal clerk contact OPRA custodian email phone"
        assert max_results == 5
        assert allowlist == [".gov", ".nj.us"]

    @pytest.mark.asyncio
    async def test_no_results(self):
        assert await find_custodian(FakeSearch([]), "Hoboken") is None

    @pytest.mark.asyncio
    async def test_provider_error_is_none(self):
        assert await find_custodian(FakeSearch(error=ProviderError("down")), "Hoboken") is None

    @pytest.mark.asyncio
    async def test_http_error_is_none(self):
        assert await find_custodian(FakeSearch(error=httpx.ConnectError("refused")), "Hoboken") is None
