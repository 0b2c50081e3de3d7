"""
Integration Tests for NewsRAGSystem

The full pipeline is wired from a Config with a SQLite database, a stubbed
news feed and a stubbed model service.
"""

import logging
from datetime import datetime, timezone

import pytest

from news_rag.ingestion.news_source import SourceUnavailable
from news_rag.ingestion.orchestrator import BatchReport, IngestionWarning
from news_rag.main_pipeline import NewsRAGSystem
from conftest import StubEnrichmentClient, StubNewsSource, make_article


@pytest.fixture
def client():
    return StubEnrichmentClient(
        embeddings={
            'BTC rallies': [1.0, 0.0, 0.0, 0.0],
            'ETH slumps': [0.0, 1.0, 0.0, 0.0],
            'Why is bitcoin up?': [1.0, 0.1, 0.0, 0.0],
        },
        sentiment='positive',
        answer='Because of ETF inflows.'
    )


@pytest.fixture
def source():
    return StubNewsSource([
        make_article(42, title='BTC rallies', body='Bitcoin rose 5%.'),
        make_article(43, title='ETH slumps', body='Ether fell 3%.'),
    ])


@pytest.fixture
def system(config, database, source, client):
    return NewsRAGSystem(
        config=config,
        database=database,
        news_source=source,
        enrichment_client=client,
        log_level=logging.WARNING
    )


class TestSystemInitialization:

    def test_components_wired_from_config(self, system, config):
        assert system.orchestrator.max_items_per_run == config.max_items_per_run
        assert system.retriever.top_k == config.top_k_default
        assert system.retriever.distance_cutoff == config.distance_cutoff
        assert system.chat.top_k == config.top_k_default

    def test_default_components_from_config(self, config):
        system = NewsRAGSystem(config=config, log_level=logging.WARNING)

        assert system.database.dialect == 'sqlite'
        assert system.enrichment_client.base_url == 'http://model.test'
        assert system.news_source.api_url == config.news_api_url
        system.database.dispose()

    def test_get_stats(self, system):
        stats = system.get_stats()

        assert stats['total_articles'] == 0
        assert stats['database_dialect'] == 'sqlite'
        assert stats['distance_metric'] == 'cosine'
        assert stats['max_items_per_run'] == 20


class TestIngestion:

    def test_run_ingestion_batch(self, system):
        report = system.run_ingestion_batch()

        assert isinstance(report, BatchReport)
        assert report.updated == 2
        assert len(system.list_articles()) == 2

    def test_warning_when_nothing_ingested(self, config, database, source):
        failing = StubEnrichmentClient(fail_titles={'BTC rallies', 'ETH slumps'})
        system = NewsRAGSystem(
            config=config, database=database, news_source=source,
            enrichment_client=failing, log_level=logging.WARNING
        )

        with pytest.warns(IngestionWarning):
            report = system.run_ingestion_batch()

        assert report.failed == 2
        assert system.list_articles() == []

    def test_no_warning_on_rerun(self, system, recwarn):
        system.run_ingestion_batch()
        report = system.run_ingestion_batch()

        assert report.skipped == 2
        assert not any(issubclass(w.category, IngestionWarning) for w in recwarn)

    def test_no_warning_for_empty_feed(self, config, database, client, recwarn):
        system = NewsRAGSystem(
            config=config, database=database, news_source=StubNewsSource([]),
            enrichment_client=client, log_level=logging.WARNING
        )

        report = system.run_ingestion_batch()

        assert report.fetched == 0
        assert not any(issubclass(w.category, IngestionWarning) for w in recwarn)

    def test_feed_failure_propagates(self, config, database, client):
        system = NewsRAGSystem(
            config=config, database=database, news_source=StubNewsSource(fail=True),
            enrichment_client=client, log_level=logging.WARNING
        )

        with pytest.raises(SourceUnavailable):
            system.run_ingestion_batch()

    def test_fetch_and_return_raw_stores_nothing(self, system):
        records = system.fetch_and_return_raw()

        assert [r['id'] for r in records] == [42, 43]
        assert records[0]['published_at'] == '2024-05-01T12:00:00+00:00'
        assert system.list_articles() == []


class TestQueries:

    def test_search(self, system):
        system.run_ingestion_batch()

        results = system.search('Why is bitcoin up?')

        assert [r['title'] for r in results] == ['BTC rallies']
        assert set(results[0]) == {'title', 'summary', 'tags', 'published_at', 'distance'}
        assert results[0]['summary'] == 'Summary of BTC rallies'
        assert results[0]['tags'] == ['BTC', 'Market']

    def test_answer(self, system, client):
        system.run_ingestion_batch()

        response = system.answer('Why is bitcoin up?')

        assert response['answer'] == 'Because of ETF inflows.'
        assert response['context'] == 'BTC rallies\nSummary of BTC rallies'
        assert response['context_used'][0]['id'] == 42
        assert client.calls[-1] == ('converse', 'Why is bitcoin up?', 'BTC rallies\nSummary of BTC rallies')

    def test_answer_with_empty_store(self, system, client):
        response = system.answer('Why is bitcoin up?')

        assert response['context'] == ''
        assert response['context_used'] == []
        assert client.calls[-1] == ('converse', 'Why is bitcoin up?', '')


class TestArticleOperations:

    def test_get_article_counts_views(self, system):
        system.run_ingestion_batch()

        system.get_article(42)
        article = system.get_article(42)

        assert article['title'] == 'BTC rallies'
        assert article['views'] == 2
        assert system.get_article(42, count_view=False)['views'] == 2

    def test_get_missing_article(self, system):
        assert system.get_article(999) is None

    def test_purge_then_list_is_empty(self, system):
        system.run_ingestion_batch()

        deleted = system.purge_all()

        assert deleted == 2
        assert system.list_articles() == []
        assert system.search('Why is bitcoin up?') == []

    def test_sentiment_stats(self, system):
        system.run_ingestion_batch()
        now = datetime(2024, 5, 1, 18, 0, tzinfo=timezone.utc)

        assert system.sentiment_stats('24h', now=now) == {'positive': 2, 'negative': 0, 'neutral': 0}
        assert system.sentiment_stats('24h', now=datetime(2024, 6, 1, tzinfo=timezone.utc)) == {
            'positive': 0, 'negative': 0, 'neutral': 0
        }
        assert system.sentiment_stats('30d', now=datetime(2024, 5, 20, tzinfo=timezone.utc))['positive'] == 2

    def test_sentiment_news(self, system):
        system.run_ingestion_batch()
        now = datetime(2024, 5, 1, 18, 0, tzinfo=timezone.utc)

        news = system.sentiment_news(now=now)

        assert sorted(item['id'] for item in news) == [42, 43]
        assert all(item['sentiment'] == 'positive' for item in news)
