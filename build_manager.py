"""
build_manager.py — Generate content, then build and post-process the site.

Usage:
    python build_manager.py              # Generate for all new keywords, then build
    python build_manager.py --batch      # Generate the next scheduled batch, then build
    python build_manager.py --force      # Ignore the unchanged-keywords shortcut
"""

import sys
import shlex
import logging
import argparse
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from config import (
    KEYWORD_PATH, SITE_BUILD_COMMAND, PRERENDER_COMMAND,
    SITEMAP_COMMAND, FEED_COMMAND, BASE_DIR,
)
from article_store import ArticleStoreError, load_articles, article_routes
from batch_generator import BatchGenerator
from generate_content import (
    GenerationContext, build_context, generation_result, run_generation,
)
from key_rotator import NoValidKeysError

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger("build_manager")

SiteStep = Callable[[list[dict]], None]


@dataclass
class Collaborators:
    """External build steps. A step left as None is disabled."""
    render: Optional[SiteStep] = None
    prerender: Optional[SiteStep] = None
    emit_sitemap: Optional[SiteStep] = None
    emit_feed: Optional[SiteStep] = None


def command_collaborator(command: str) -> Optional[SiteStep]:
    """Wrap a shell-style command as a build step. Empty means disabled."""
    args = shlex.split(command or "")
    if not args:
        return None

    def run(articles: list[dict]):
        log.info(f"Running: {command}")
        subprocess.run(args, cwd=BASE_DIR, check=True)

    return run


def collaborators_from_config() -> Collaborators:
    return Collaborators(
        render=command_collaborator(SITE_BUILD_COMMAND),
        prerender=command_collaborator(PRERENDER_COMMAND),
        emit_sitemap=command_collaborator(SITEMAP_COMMAND),
        emit_feed=command_collaborator(FEED_COMMAND),
    )


class BuildManager:
    """Top-level driver: content generation first, site build after."""

    def __init__(self, context: GenerationContext, collaborators: Collaborators,
                 batch_generator: BatchGenerator | None = None,
                 keyword_path: Path = KEYWORD_PATH):
        self.context = context
        self.keyword_path = keyword_path
        self.collaborators = collaborators
        self.batch_generator = batch_generator

    def generate_batch(self) -> tuple[dict, bool]:
        generator = self.batch_generator or BatchGenerator(
            keyword_path=self.keyword_path,
            articles_path=self.context.articles_path,
            cache_path=self.context.cache_path,
        )
        result = generator.run_batch(
            lambda path, backlog_size: run_generation(
                self.context, path, force=True, record_hash=False, backlog_size=backlog_size,
            )
        )
        log.info(f"Batch result: {result['reason']} ({result['processed']} processed)")
        return result, result["shouldDeploy"]

    def generate_all(self, force: bool = False) -> tuple[dict, bool]:
        try:
            result = run_generation(self.context, self.keyword_path, force=force)
        except ArticleStoreError:
            raise
        except Exception as e:
            log.error(f"Content generation failed, continuing with the build: {e}")
            return generation_result("generation_failed"), True
        log.info(f"Content generation completed: {result['reason']}")
        return result, True

    def build_site(self) -> list[str]:
        """Run the site build, then the post-build steps.

        A failed site build propagates. Post-build failures are logged and skipped.
        """
        articles = load_articles(self.context.articles_path)

        if self.collaborators.render is None:
            log.info("Site build disabled, skipping")
        else:
            log.info("Building site...")
            self.collaborators.render(articles)

        log.info(f"Running post-build tasks for {len(article_routes(articles))} article routes...")
        post_build = [
            ("Prerender", self.collaborators.prerender),
            ("Sitemap", self.collaborators.emit_sitemap),
            ("RSS feed", self.collaborators.emit_feed),
        ]
        completed = []
        for name, step in post_build:
            if step is None:
                log.info(f"{name} disabled, skipping")
                continue
            try:
                step(articles)
            except Exception as e:
                log.warning(f"{name} failed, continuing: {e}")
                continue
            log.info(f"{name} completed")
            completed.append(name)
        return completed

    def build(self, batch: bool = False, force: bool = False) -> dict:
        """Generate content and build the site when there is something to deploy."""
        log.info("=" * 60)
        log.info("KontenKit — Build")
        log.info("=" * 60)

        if batch:
            result, should_deploy = self.generate_batch()
        else:
            result, should_deploy = self.generate_all(force=force)

        if not should_deploy:
            log.info("Nothing to deploy, skipping site build")
            return {"generation": result, "built": False, "postBuild": []}

        post_build = self.build_site()
        log.info("Build completed successfully!")
        return {"generation": result, "built": True, "postBuild": post_build}


# ═══════════════════════════════════════════════════════════════
# CLI Entry Point
# ═══════════════════════════════════════════════════════════════

def main():
    parser = argparse.ArgumentParser(description="KontenKit build manager")
    parser.add_argument("--batch", action="store_true", help="Generate only the next scheduled batch")
    parser.add_argument("--force", action="store_true", help="Diff keywords even if keyword.txt is unchanged")
    args = parser.parse_args()

    try:
        context = build_context()
    except NoValidKeysError as e:
        log.error(f"Fatal: {e}")
        sys.exit(1)

    manager = BuildManager(context, collaborators_from_config())
    try:
        manager.build(batch=args.batch, force=args.force)
    except ArticleStoreError as e:
        log.error(f"Fatal: {e}")
        sys.exit(1)
    except subprocess.CalledProcessError as e:
        log.error(f"Site build failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
