"""Packing slip address routing and print context."""

from __future__ import annotations

from typing import Iterable, Sequence

from ..config import settings


def resolve_destination_address(
    model_name: str | None,
    *,
    routes: Sequence[tuple[str, str]] | None = None,
    default_address: str | None = None,
) -> str:
    """First route whose prefix starts the model name (case-insensitive) wins."""
    table = settings.packing_slip_routes if routes is None else routes
    fallback = settings.PACKING_SLIP_DEFAULT_ADDRESS if default_address is None else default_address
    upper = (model_name or "").upper()
    for prefix, address in table:
        if upper.startswith(prefix.upper()):
            return address
    return fallback


def build_slip_pages(products: Iterable) -> list[dict]:
    pages = []
    for product in products:
        pages.append(
            {
                "product": product,
                "sender": product.branch_code,
                "destination": resolve_destination_address(product.model_name),
            }
        )
    return pages
