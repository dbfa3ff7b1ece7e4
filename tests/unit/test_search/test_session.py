"""Tests for the search session wiring."""

import pytest

from core.errors import FilterValidationError, MissingFacetError
from core.models.filters import Filter, QueryType, SmartSuggestion
from services.search.compiler import DefaultFacetPolicy
from services.search.controller import RequestStatus
from services.search.debounce import Debouncer
from services.search.session import SearchSession, create_session
from services.search.window import ResultWindow
from tests.fixtures import FakeSearchBackend, wait_until


@pytest.fixture
def session(controller) -> SearchSession:
    """Fixture for a session with the sourceSystem default."""
    return SearchSession(
        controller=controller,
        window=ResultWindow(item_height=10, overscan=0, prefetch_threshold=200),
        required_defaults={"sourceSystem": "genius"},
        debouncer=Debouncer(delay=0.01),
    )


def sent_filters(params) -> dict:
    return {f.key: f.plain_value() for f in params.filters}


class TestFilterEditing:
    """Test cases for staging filters."""

    def test_set_and_remove(self, session):
        """Test staging and removing a filter."""
        session.set_filter("filename", "report")
        session.toggle("fileType", "pdf")

        assert session.query_object() == {"filename": "report", "fileType": ["pdf"]}

        session.remove("filename")
        assert session.query_object() == {"fileType": ["pdf"]}

    def test_invalid_value_rejected(self, session):
        """Test that invalid values are rejected while staging."""
        with pytest.raises(FilterValidationError):
            session.set_filter("createdAt", "last week")

    def test_set_range(self, session):
        """Test staging a date range."""
        session.set_range("createdAt", "2024-01-01", "2024-06-30")

        assert session.query_object()["createdAt"] == {"from": "2024-01-01", "to": "2024-06-30"}

    def test_load_query_object(self, session):
        """Test replacing staged filters from a query object."""
        session.set_filter("filename", "report")

        session.load_query_object({"clientId": "CS00", "unknown": "x"})

        assert session.query_object() == {"clientId": "CS00"}

    def test_clear(self, session):
        """Test clearing every staged filter."""
        session.set_filter("filename", "report")
        session.type_text("clientId", "CS")

        session.clear()

        assert session.filters == ()

    @pytest.mark.asyncio
    async def test_staging_does_not_search(self, session, backend):
        """Test that edits only take effect on apply."""
        session.set_filter("filename", "report")

        assert backend.calls == []


class TestApply:
    """Test cases for applying filters."""

    @pytest.mark.asyncio
    async def test_apply_injects_default(self, session, backend):
        """Test that the default facet is sent with user filters."""
        session.toggle("contentType", "application/pdf")

        response = await session.apply()

        assert response is not None
        assert sent_filters(backend.calls[-1]) == {
            "contentType": ["application/pdf"],
            "sourceSystem": "genius",
        }
        assert session.window.item_count == 10

    @pytest.mark.asyncio
    async def test_apply_resets_offset(self, session, backend):
        """Test that a filter change starts over at the first page."""
        await session.apply()
        await session.go_to_offset(40)

        session.set_filter("filename", "report")
        await session.apply()

        assert backend.calls[-1].offset == 0

    @pytest.mark.asyncio
    async def test_strict_policy(self, controller):
        """Test that the strict policy refuses to search without the facet."""
        session = SearchSession(
            controller=controller,
            required_defaults={"sourceSystem": "genius"},
            policy=DefaultFacetPolicy.STRICT,
        )

        with pytest.raises(MissingFacetError):
            await session.apply()

    @pytest.mark.asyncio
    async def test_initial_facet_becomes_default(self, controller, backend):
        """Test that a supplied source system is kept after clearing."""
        session = SearchSession(
            controller=controller,
            required_defaults={"sourceSystem": "genius"},
            initial_filters=(Filter(key="sourceSystem", type=QueryType.MATCHES, value="docuware"),),
        )
        session.clear()

        await session.apply()

        assert sent_filters(backend.calls[-1]) == {"sourceSystem": "docuware"}

    @pytest.mark.asyncio
    async def test_apply_suggestion(self, session, backend):
        """Test applying a preset filter set."""
        session.set_filter("filename", "report")
        suggestion = SmartSuggestion(
            id="recent-pdfs",
            title="Recent PDFs",
            filters={"contentType": ["application/pdf"], "createdAt": {"from": "2024-01-01"}},
        )

        await session.apply_suggestion(suggestion)

        assert list(sent_filters(backend.calls[-1])) == [
            "filename",
            "contentType",
            "createdAt",
            "sourceSystem",
        ]


class TestAutoApply:
    """Test cases for debounced text filters."""

    @pytest.mark.asyncio
    async def test_typing_searches_once(self, session, backend):
        """Test that only the last keystroke is searched."""
        session.auto_apply = True

        for text in ("r", "re", "rep", "report"):
            session.type_text("filename", text)

        await wait_until(lambda: session.controller.status == RequestStatus.SUCCESS)

        assert len(backend.calls) == 1
        assert sent_filters(backend.calls[0])["filename"] == "report"

    @pytest.mark.asyncio
    async def test_typing_without_auto_apply(self, session, backend):
        """Test that typing alone does not search."""
        session.type_text("filename", "report")

        assert not session.debouncer.is_pending("filename")
        assert session.filters == ()

    @pytest.mark.asyncio
    async def test_confirm_text(self, session, backend):
        """Test confirming a text filter with Enter."""
        session.type_text("filename", "report")

        response = await session.confirm_text("filename")

        assert response is not None
        assert sent_filters(backend.calls[-1])["filename"] == "report"

    @pytest.mark.asyncio
    async def test_invalid_text_recorded(self, session, backend):
        """Test that an invalid draft is recorded instead of raised."""
        session.type_text("createdAt", "yesterday")

        assert await session.confirm_text("createdAt") is None
        assert isinstance(session.validation_errors["createdAt"], FilterValidationError)
        assert backend.calls == []


class TestNavigation:
    """Test cases for paging through results."""

    @pytest.mark.asyncio
    async def test_next_and_previous_page(self, session, backend):
        """Test paging forward and back."""
        await session.apply()

        page_two = await session.next_page()
        assert page_two.pagination.current_page == 2
        assert session.window.items[0].id == "doc-10"
        assert session.window.item_count == 10

        page_one = await session.previous_page()
        assert page_one.pagination.current_page == 1
        assert len(backend.calls) == 2

    @pytest.mark.asyncio
    async def test_go_to_offset_before_apply_sends_default(self, test_settings):
        """Test that paging before the first apply still sends the default facet."""
        backend = FakeSearchBackend()
        session = create_session(test_settings, client=backend)

        response = await session.go_to_offset(20)

        assert response.pagination.current_offset == 20
        assert len(backend.calls) == 1
        assert backend.calls[0].offset == 20
        assert sent_filters(backend.calls[0]) == {"sourceSystem": test_settings.default_source_system}

    @pytest.mark.asyncio
    async def test_go_to_offset_before_apply_strict(self, controller, backend):
        """Test that the strict policy also guards paging before the first apply."""
        session = SearchSession(
            controller=controller,
            required_defaults={"sourceSystem": "genius"},
            policy=DefaultFacetPolicy.STRICT,
        )

        with pytest.raises(MissingFacetError):
            await session.go_to_offset(20)
        assert backend.calls == []

    @pytest.mark.asyncio
    async def test_next_page_before_search(self, session):
        """Test that paging needs a displayed result."""
        assert await session.next_page() is None
        assert await session.previous_page() is None

    @pytest.mark.asyncio
    async def test_scroll_triggers_prefetch(self, session, backend):
        """Test that nearing the end prefetches the next page."""
        await session.apply()

        session.window.on_scroll(scroll_top=0, client_height=50)
        await wait_until(lambda: len(backend.calls) == 2)

        assert backend.calls[-1].offset == 10
        assert session.window.item_count == 10

    @pytest.mark.asyncio
    async def test_infinite_scroll_appends(self, controller, backend):
        """Test that infinite scroll appends the next page."""
        session = SearchSession(
            controller=controller,
            window=ResultWindow(item_height=10, prefetch_threshold=200),
            required_defaults={"sourceSystem": "genius"},
            infinite_scroll=True,
        )
        await session.apply()

        session.window.on_scroll(scroll_top=0, client_height=50)
        await wait_until(lambda: session.window.item_count == 20)

        assert [item.id for item in session.window.items[9:11]] == ["doc-9", "doc-10"]
        assert len(backend.calls) == 2


class TestContentSearch:
    """Test cases for content search through the session."""

    @pytest.mark.asyncio
    async def test_not_configured(self, session):
        """Test that content search needs a backend."""
        with pytest.raises(RuntimeError):
            await session.search_content("termination clause")
