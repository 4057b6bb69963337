"""
Auth Session Controller Entry Point.

Bootstraps the dependency graph via constructor injection, waits for the
first session reconciliation and prints the resulting session snapshot as
JSON.  When started with a magic-link URL the link is redeemed first.

Usage::

    python main.py                       # show the current session
    python main.py "<magic link url>"    # redeem an emailed sign-in link
    python main.py --sign-out            # end the current session
"""

from __future__ import annotations

import asyncio
import json
import sys
import traceback
from typing import Optional

from authsession.backends import SupabaseIdentityBackend
from authsession.config import get_config
from authsession.logger import StructuredLogger, get_logger
from authsession.services import create_auth_controller
from authsession.storage import SQLiteKeyValueStore


async def run(argv: list[str]) -> int:
    """Wire dependencies, run the requested action and print the session."""
    logger: StructuredLogger = get_logger("main")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()
    config.validate_backend_config()

    # ------------------------------------------------------------------
    # 2. Durable key/value store
    # ------------------------------------------------------------------
    storage = await SQLiteKeyValueStore.open(
        path=config.STORAGE_PATH,
        logger=StructuredLogger(name="storage"),
        table=config.STORAGE_TABLE,
    )

    try:
        # --------------------------------------------------------------
        # 3. Identity backend
        # --------------------------------------------------------------
        backend = await SupabaseIdentityBackend.create(
            url=config.SUPABASE_URL,
            key=config.SUPABASE_ANON_KEY.get_secret_value(),
            return_url=config.AUTH_RETURN_URL,
            logger=StructuredLogger(name="backend"),
        )

        # --------------------------------------------------------------
        # 4. Controller (single composition root)
        # --------------------------------------------------------------
        controller, capabilities = create_auth_controller(
            config=config,
            backend=backend,
            storage=storage,
            logger=get_logger("auth"),
        )

        async with controller:
            await controller.settle()

            link: Optional[str] = next((a for a in argv if not a.startswith("--")), None)
            if link:
                capabilities.open_url(link)
                result = await controller.process_email_link()
                capabilities.reset_location()
                if not result.result:
                    logger.warning("Magic link redemption failed: %s", result.error)
            elif "--sign-out" in argv:
                await controller.sign_out()

            await controller.settle()

            user = controller.auth_user
            print(json.dumps({
                "signed_in": user is not None,
                "set_password_mode": controller.set_password_mode,
                "user": user.model_dump(mode="json") if user else None,
            }, indent=2))
    finally:
        await storage.close()

    return 0


def main() -> None:
    """Application entry point."""
    try:
        sys.exit(asyncio.run(run(sys.argv[1:])))
    except Exception as exc:
        detail = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        print(f"Fatal error: {exc}\n{detail}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
