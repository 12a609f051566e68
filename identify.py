"""Identity Reconciliation command-line entry point.

Usage:
  # Resolve one observation against DATABASE_URL and print the consolidated contact
  python identify.py resolve --email lorraine@hillvalley.edu --phone 123456

  # Serve POST /identify over HTTP
  python identify.py serve --port 3000
"""
import argparse
import asyncio
import json
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError

from db.connection import create_engine, create_session_factory, dispose_engine
from identity.errors import IdentityError
from identity.service import IdentityService
from schemas.identify import IdentifyRequest, IdentifyResponse
import service_config

logger = logging.getLogger(__name__)


async def run_resolve(request: IdentifyRequest) -> dict:
    """Resolve one observation and return the response body."""
    engine = create_engine()
    try:
        service = IdentityService(create_session_factory(engine))
        contact = await service.identify(request.email, request.phone_number)
    finally:
        await dispose_engine(engine)
    return IdentifyResponse(contact=contact).model_dump(by_alias=True)


def run_serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("api.main:app", host=host, port=port, log_config=None)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Identity reconciliation service")
    sub = parser.add_subparsers(dest="command", required=True)

    resolve = sub.add_parser("resolve", help="Resolve one email/phone observation")
    resolve.add_argument("--email", default=None)
    resolve.add_argument("--phone", default=None)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=service_config.host())
    serve.add_argument("--port", type=int, default=service_config.port())

    args = parser.parse_args(argv)
    service_config.configure_logging()

    if args.command == "serve":
        run_serve(args.host, args.port)
        return 0

    try:
        request = IdentifyRequest(email=args.email, phone_number=args.phone)
    except ValidationError as exc:
        parser.error(str(exc))
    if not request.has_identifier():
        parser.error("resolve needs --email and/or --phone")
    try:
        body = asyncio.run(run_resolve(request))
    except IdentityError as exc:
        logger.error("Resolution failed: %s", exc)
        return 1
    print(json.dumps(body, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
