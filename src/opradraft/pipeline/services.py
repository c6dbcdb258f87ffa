"""Service container: every pipeline component wired from settings.

Components take their capabilities as constructor arguments; this module is
the one place that decides which concrete providers back them. Tests build
a ``Services`` by hand with in-memory doubles instead.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache

from opradraft.analysis.analyzer import CategoryAnalyzer
from opradraft.config import Settings, settings
from opradraft.drafting.composer import RequestComposer
from opradraft.ingestion.chunker import OrdinanceChunker
from opradraft.ingestion.discovery import OrdinanceDiscovery
from opradraft.ingestion.indexer import EmbeddingIndexer, SessionFactory
from opradraft.ingestion.matcher import MunicipalityMatcher
from opradraft.observability.prompts import get_active_prompt
from opradraft.pipeline.processing import OrdinanceProcessor
from opradraft.providers.answer import PerplexityAnswerEngine
from opradraft.providers.base import AnswerEngine, BlobStore, KeywordSearch, PageFetcher, TextModel
from opradraft.providers.blob import LocalBlobStore
from opradraft.providers.embeddings import OpenAIEmbedder
from opradraft.providers.llm import ChatModel
from opradraft.providers.search import TavilySearch
from opradraft.providers.web import HttpPageFetcher
from opradraft.retrieval.vector_store import VectorStore
from opradraft.storage.db import get_session

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a workflow needs, grouped for injection."""

    settings: Settings
    session_factory: SessionFactory
    matcher: MunicipalityMatcher
    discovery: OrdinanceDiscovery
    processor: OrdinanceProcessor
    vector_store: VectorStore
    composer: RequestComposer
    blob_store: BlobStore

    # Optional providers (None when not configured)
    search: KeywordSearch | None = None
    answer_engine: AnswerEngine | None = None
    text_model: TextModel | None = None
    fetcher: PageFetcher | None = None
    analyzer: CategoryAnalyzer | None = None
    embeddings_configured: bool = False


def build_services(config: Settings = settings, session_factory: SessionFactory = get_session) -> Services:
    """Wire concrete providers according to which credentials are present."""
    matcher = MunicipalityMatcher(state=config.target_state, state_abbr=config.target_state_abbr)

    search = TavilySearch(config.tavily_api_key) if config.tavily_api_key else None
    answer_engine = None
    if config.perplexity_api_key:
        answer_engine = PerplexityAnswerEngine(
            config.perplexity_api_key,
            model=config.perplexity_model,
            system_prompt=get_active_prompt("research_system").format(state=config.target_state),
        )
    chat = ChatModel.from_settings(config)
    text_model = chat if chat.configured else None
    fetcher = HttpPageFetcher()

    embedder = OpenAIEmbedder.from_settings(config)
    vector_store = VectorStore(embedder, session_factory=session_factory)
    indexer = EmbeddingIndexer(
        embedder,
        session_factory=session_factory,
        batch_size=config.embedding_batch_size,
        concurrency=config.embedding_concurrency,
    )
    chunker = OrdinanceChunker(max_size=config.chunk_max_size, overlap=config.chunk_overlap)

    discovery = OrdinanceDiscovery(
        search,
        text_model=text_model,
        answer_engine=answer_engine,
        fetcher=fetcher,
        matcher=matcher,
        max_attempts=config.discovery_max_attempts,
    )
    analyzer = None
    if text_model is not None:
        analyzer = CategoryAnalyzer(vector_store, text_model, concurrency=config.analysis_concurrency)

    logger.info(
        "Services: search=%s answer_engine=%s chat=%s embeddings=%s",
        bool(search), bool(answer_engine), bool(text_model), bool(config.openai_api_key),
    )
    return Services(
        settings=config,
        session_factory=session_factory,
        matcher=matcher,
        discovery=discovery,
        processor=OrdinanceProcessor(chunker, indexer, session_factory=session_factory),
        vector_store=vector_store,
        composer=RequestComposer(),
        blob_store=LocalBlobStore(config.blob_root, base_url=config.blob_base_url),
        search=search,
        answer_engine=answer_engine,
        text_model=text_model,
        fetcher=fetcher,
        analyzer=analyzer,
        embeddings_configured=bool(config.openai_api_key),
    )


@lru_cache(maxsize=1)
def get_services() -> Services:
    """Process-wide container, built on first use."""
    return build_services()
