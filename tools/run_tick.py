from __future__ import annotations

import argparse
import asyncio

from shared.auto_publish import AutoPublishWorker
from shared.db import get_engine
from shared.logging import configure_logging
from shared.notifications import build_rejection_notifier
from shared.openai_client import OpenAIModerator
from shared.post_store import PostStore, UserStore
from shared.prompts import PromptStore
from shared.settings import settings


def main() -> int:
    parser = argparse.ArgumentParser(description="Run one auto-publish tick against the configured database.")
    parser.add_argument("--skip-publish", action="store_true", help="only run the moderation sweep")
    args = parser.parse_args()

    configure_logging()
    engine = get_engine()
    worker = AutoPublishWorker(
        PostStore(engine),
        UserStore(engine),
        OpenAIModerator(PromptStore(settings.moderation_prompt_path)),
        build_rejection_notifier(settings),
        moderation_batch_size=settings.moderation_batch_size,
        publish_batch_size=settings.publish_batch_size,
    )

    if args.skip_publish:
        result = asyncio.run(worker.process_pending_moderation())
    else:
        result = asyncio.run(worker.tick())
    if result is None:
        print("tick failed, see log output")
        return 1

    print(
        f"approved={result.approved} rejected={result.rejected} "
        f"errored={result.errored} published={result.published}"
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
