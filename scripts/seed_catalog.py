from __future__ import annotations

import argparse

from app.core.config import settings
from app.db.session import async_session_maker
from app.services.flow_catalog import (
    CatalogStore,
    build_default_catalog,
    load_products,
    publish,
    save_draft,
)


def _parse_args() -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Store the default flow catalog as a new draft version"
    )
    p.add_argument("--products-file", default=settings.products_file)
    p.add_argument("--publish", action="store_true", help="Publish the new draft")
    return p.parse_args()


async def main() -> None:
    args = _parse_args()

    products = load_products(args.products_file.strip())
    catalog = build_default_catalog(products)

    async with async_session_maker() as session:
        version = await save_draft(session=session, nodes=catalog.nodes)
        print(f"Draft saved: version={version} flows={len(catalog.nodes)}")

        if args.publish:
            await publish(session=session, version=version, store=CatalogStore(products))
            print(f"Published version {version}")


if __name__ == "__main__":
    import asyncio

    asyncio.run(main())
