"""
Command-line interface for diffcluster.

Clusters the changed files of a working tree (or an explicit file list) and
prints the clusters as JSON.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from .clustering import SmartClusterer
from .clustering.base import ClusteringError
from .config import AUTO_METHOD, METHODS, PRESETS, ClusteringConfig, apply_env_overrides, apply_preset, load_config
from .embeddings.base import EmbeddingClient
from .git_integration import GitIntegration

logger = logging.getLogger(__name__)

PROVIDERS = ('st', 'openai', 'none')


class DiffClusterCLI:
    """Command-line interface wiring configuration, embedding client and cascade."""

    def create_parser(self) -> argparse.ArgumentParser:
        """Create command-line argument parser."""
        parser = argparse.ArgumentParser(
            prog='diffcluster',
            description='Group changed files into clusters that each get one description'
        )

        parser.add_argument(
            'root',
            type=str,
            help='Root folder of the changeset (a git working tree unless files are given)'
        )

        parser.add_argument(
            'files',
            nargs='*',
            help='Changed files to cluster (default: changed files reported by git status)'
        )

        parser.add_argument(
            '--target', '-t',
            type=int,
            default=0,
            help='Desired number of clusters; 0 uses similarity thresholds (default: 0)'
        )

        parser.add_argument(
            '--method', '-m',
            choices=(AUTO_METHOD,) + METHODS,
            help='Run only this clustering method instead of the cascade'
        )

        parser.add_argument(
            '--preset',
            choices=sorted(PRESETS),
            help='Start from a configuration preset instead of the config file'
        )

        parser.add_argument(
            '--config', '-c',
            type=Path,
            help='Configuration file (default: <root>/diffcluster.config.json)'
        )

        parser.add_argument(
            '--provider',
            choices=PROVIDERS,
            default='st',
            help='Embedding provider: sentence-transformers, OpenAI, or none (default: st)'
        )

        parser.add_argument(
            '--model',
            type=str,
            help='Embedding model name for the selected provider'
        )

        parser.add_argument(
            '--benchmark',
            action='store_true',
            help='Run the benchmark suite (threshold mode and 3/5/8 targets) instead of one clustering'
        )

        parser.add_argument(
            '--verbose', '-v',
            action='store_true',
            help='Enable debug logging'
        )

        return parser

    def load_config(self, args: argparse.Namespace) -> ClusteringConfig:
        if args.preset:
            config = apply_env_overrides(apply_preset(args.preset))
        else:
            config = load_config(args.root, args.config)

        if args.method:
            config.default_method = args.method
            config.enable_fallback_methods = args.method == AUTO_METHOD
        return config

    def create_client(self, args: argparse.Namespace, config: ClusteringConfig) -> Optional[EmbeddingClient]:
        """Embedding client for the chosen provider; None disables the embedding layers."""
        if args.provider == 'none':
            return None

        if args.provider == 'openai':
            from .embeddings.openai_client import OpenAIEmbeddingClient
            kwargs: Dict[str, Any] = {'timeout': config.semantic.embedding_timeout}
            if args.model:
                kwargs['model_name'] = args.model
            return OpenAIEmbeddingClient(**kwargs)

        from .embeddings.sentence_transformers import SentenceTransformersEmbeddingClient
        if args.model:
            return SentenceTransformersEmbeddingClient(model_name=args.model)
        return SentenceTransformersEmbeddingClient()

    def collect_files(self, args: argparse.Namespace) -> List[str]:
        if args.files:
            return list(args.files)

        git = GitIntegration(args.root)
        if not git.is_git_repo():
            raise ValueError(f"{args.root} is not a git repository; pass files explicitly")
        return git.get_changed_files()

    def run(self, args: Optional[List[str]] = None) -> int:
        """Run CLI with arguments."""
        parser = self.create_parser()
        parsed_args = parser.parse_args(args)

        logging.basicConfig(
            level=logging.DEBUG if parsed_args.verbose else logging.WARNING,
            format='%(asctime)s %(levelname)s %(name)s: %(message)s',
            stream=sys.stderr,
        )

        try:
            root = str(Path(parsed_args.root).resolve())
            parsed_args.root = root

            config = self.load_config(parsed_args)
            files = self.collect_files(parsed_args)
            logger.debug("Clustering %d changed files under %s", len(files), root)
            clusterer = SmartClusterer(config=config, client=self.create_client(parsed_args, config))

            if parsed_args.benchmark:
                print(json.dumps(clusterer.benchmark(files, root).to_dict(), indent=2))
                return 0

            attempt = clusterer.run(files, root, parsed_args.target)
            output = {
                'method': attempt.method,
                'confidence': round(attempt.confidence, 3),
                'clusters': attempt.clusters,
            }
            if parsed_args.verbose:
                output['details'] = [cluster.to_dict() for cluster in attempt.to_file_clusters()]
                output['cacheStats'] = clusterer.cache_store.get_stats()
            print(json.dumps(output, indent=2))
            return 0

        except (ClusteringError, ValueError, ImportError) as e:
            print(f"Error: {e}", file=sys.stderr)
            if parsed_args.verbose:
                import traceback
                traceback.print_exc()
            return 1


def create_cli() -> DiffClusterCLI:
    """Create diffcluster CLI instance."""
    return DiffClusterCLI()


def main() -> int:
    """Main entry point for CLI."""
    cli = create_cli()
    return cli.run()


if __name__ == '__main__':
    sys.exit(main())
