"""
Command-Line Interface for the Crypto News RAG System

Provides CLI commands for:
- Fetching the raw news feed
- Running an ingestion batch (fetch, store, enrich)
- Similarity search and RAG-based question answering
- Article listing, detail view and purge
- Sentiment statistics
"""

import sys
import json
import argparse
import logging
import warnings
from typing import List, Optional

from .ingestion.news_source import SourceUnavailable
from .ingestion.orchestrator import IngestionWarning
from .main_pipeline import NewsRAGSystem

logger = logging.getLogger(__name__)

REFRESH_FAILED = "✗ News refresh failed. See the log for details."
PROCESSING_ERROR = "✗ A processing error occurred. See the log for details."


def setup_logging(verbose: bool = False):
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def build_system(args) -> NewsRAGSystem:
    return NewsRAGSystem(log_level=logging.DEBUG if args.verbose else logging.INFO)


def print_json(data):
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def cmd_fetch(args):
    """Handle the fetch command."""
    system = build_system(args)

    try:
        records = system.fetch_and_return_raw()
    except SourceUnavailable as e:
        logger.error(f"Feed fetch failed: {e}")
        print("✗ Could not reach the news feed.")
        sys.exit(1)

    print_json(records)


def cmd_refresh(args):
    """Handle the refresh command."""
    system = build_system(args)

    try:
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", IngestionWarning)
            report = system.run_ingestion_batch(show_progress=not args.quiet)
    except SourceUnavailable as e:
        logger.error(f"Ingestion aborted: {e}")
        print(REFRESH_FAILED)
        sys.exit(1)

    print(f"\n{'='*60}")
    print("Refresh Summary:")
    print(f"  Fetched: {report.fetched}")
    print(f"  Processed: {report.processed}")
    print(f"  Updated: {report.updated}")
    print(f"  Skipped: {report.skipped}")
    print(f"  Failed: {report.failed}")
    print(f"  Processing time: {report.processing_time:.2f}s")
    print(f"{'='*60}")

    if any(issubclass(w.category, IngestionWarning) for w in caught):
        print(REFRESH_FAILED)
        sys.exit(1)


def cmd_search(args):
    """Handle the search command."""
    system = build_system(args)

    print(f"Searching for: {args.query}")
    print()

    try:
        results = system.search(args.query, k=args.top_k)
    except Exception as e:
        logger.error(f"Search failed: {e}")
        print(PROCESSING_ERROR)
        sys.exit(1)

    if not results:
        print("No relevant articles found.")
        return

    print(f"Found {len(results)} results:\n")

    for i, result in enumerate(results, 1):
        print(f"[{i}] {result['title']}")
        print(f"    Published: {result['published_at'] or 'N/A'}")
        print(f"    Tags: {', '.join(result['tags']) or 'N/A'}")
        print(f"    Distance: {result['distance']:.3f}")
        if result['summary']:
            print(f"    Summary: {result['summary'][:200]}")
        print()


def cmd_ask(args):
    """Handle the ask command."""
    system = build_system(args)

    print(f"Question: {args.question}")
    print()

    try:
        result = system.answer(args.question)
    except Exception as e:
        logger.error(f"Answering failed: {e}")
        print(PROCESSING_ERROR)
        sys.exit(1)

    print("Answer:")
    print(f"{result['answer']}")
    print()

    if args.show_context and result['context_used']:
        print("Context:")
        for i, item in enumerate(result['context_used'], 1):
            print(f"  [{i}] {item['title']} (distance {item['distance']:.3f})")
        print()

    print(f"Response time: {result['response_time']:.2f}s")


def cmd_list(args):
    """Handle the list command."""
    system = build_system(args)

    articles = system.list_articles()
    if not articles:
        print("No articles stored.")
        return

    for article in articles:
        sentiment = article['sentiment'] or 'pending'
        print(f"{article['id']}  [{sentiment}]  {article['title']}")


def cmd_show(args):
    """Handle the show command."""
    system = build_system(args)

    article = system.get_article(args.id)
    if article is None:
        print(f"✗ Article {args.id} not found")
        sys.exit(1)

    print_json(article)


def cmd_purge(args):
    """Handle the purge command."""
    if not args.yes:
        print("✗ Refusing to delete all articles without --yes")
        sys.exit(1)

    system = build_system(args)
    deleted = system.purge_all()
    print(f"✓ Deleted {deleted} articles")


def cmd_sentiment(args):
    """Handle the sentiment command."""
    system = build_system(args)

    stats = system.sentiment_stats(args.range)
    print(f"Sentiment over the last {args.range}:")
    print(f"  Positive: {stats['positive']}")
    print(f"  Negative: {stats['negative']}")
    print(f"  Neutral: {stats['neutral']}")

    if args.news:
        print()
        for item in system.sentiment_news():
            print(f"  {item['published_at']}  [{item['sentiment']}]  {item['title']}")


def cmd_init_db(args):
    """Handle the init-db command."""
    system = build_system(args)
    stats = system.get_stats()
    print(f"✓ Schema ready on {stats['database_dialect']} ({stats['total_articles']} articles stored)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='news-rag',
        description='Crypto News RAG - news ingestion, enrichment and question answering',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Show what the feed currently returns
  news-rag fetch

  # Store and enrich the latest articles
  news-rag refresh

  # Search stored articles
  news-rag search "bitcoin price"

  # Ask a question
  news-rag ask "Why is bitcoin rallying?"

  # Sentiment over the last week
  news-rag sentiment --range 7d
        """
    )

    # Global arguments
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    fetch_parser = subparsers.add_parser('fetch', help='Print the raw news feed without storing it')
    fetch_parser.set_defaults(func=cmd_fetch)

    refresh_parser = subparsers.add_parser('refresh', help='Fetch, store and enrich the latest news')
    refresh_parser.add_argument(
        '--quiet', '-q',
        action='store_true',
        help='Hide the progress bar'
    )
    refresh_parser.set_defaults(func=cmd_refresh)

    search_parser = subparsers.add_parser('search', help='Search for relevant articles')
    search_parser.add_argument('query', help='Search query')
    search_parser.add_argument(
        '--top-k',
        type=int,
        default=None,
        help='Number of candidates before the distance cutoff (default: TOP_K_DEFAULT)'
    )
    search_parser.set_defaults(func=cmd_search)

    ask_parser = subparsers.add_parser('ask', help='Ask a question and get an AI-generated answer')
    ask_parser.add_argument('question', help='Question to ask')
    ask_parser.add_argument(
        '--show-context',
        action='store_true',
        help='List the articles used as context'
    )
    ask_parser.set_defaults(func=cmd_ask)

    list_parser = subparsers.add_parser('list', help='List stored articles')
    list_parser.set_defaults(func=cmd_list)

    show_parser = subparsers.add_parser('show', help='Show one article and count a view')
    show_parser.add_argument('id', type=int, help='Article id')
    show_parser.set_defaults(func=cmd_show)

    purge_parser = subparsers.add_parser('purge', help='Delete all stored articles')
    purge_parser.add_argument('--yes', action='store_true', help='Confirm deletion')
    purge_parser.set_defaults(func=cmd_purge)

    sentiment_parser = subparsers.add_parser('sentiment', help='Show sentiment statistics')
    sentiment_parser.add_argument(
        '--range',
        choices=['24h', '7d', '30d'],
        default='24h',
        help='Time window (default: 24h)'
    )
    sentiment_parser.add_argument(
        '--news',
        action='store_true',
        help='Also list positive/negative articles from the last 24 hours'
    )
    sentiment_parser.set_defaults(func=cmd_sentiment)

    init_parser = subparsers.add_parser('init-db', help='Create the database schema')
    init_parser.set_defaults(func=cmd_init_db)

    return parser


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        logger.error(f"Command '{args.command}' failed: {e}")
        print(PROCESSING_ERROR)
        if args.verbose:
            import traceback
            traceback.print_exc()
        sys.exit(1)


if __name__ == '__main__':
    main()
