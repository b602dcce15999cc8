#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from storefront_pay.core.config import (  # noqa: E402
    MP_ACCESS_TOKEN,
    RECONCILE_BATCH_LIMIT,
    RECONCILE_PENDING_AFTER_MINUTES,
)
from storefront_pay.core.database import SessionLocal  # noqa: E402
from storefront_pay.core.logging_setup import configure_logging  # noqa: E402
from storefront_pay.integrations.mercadopago import MercadoPagoClient  # noqa: E402
from storefront_pay.services.credentials import CredentialResolver  # noqa: E402
from storefront_pay.services.reconciliation import sweep_pending_orders  # noqa: E402


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Concilia cobranças PIX pendentes com o Mercado Pago.")
    parser.add_argument(
        "--older-than",
        type=int,
        default=RECONCILE_PENDING_AFTER_MINUTES,
        help="Idade mínima do pedido em minutos",
    )
    parser.add_argument("--limit", type=int, default=RECONCILE_BATCH_LIMIT, help="Máximo de pedidos por execução")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    if args.older_than < 0 or args.limit < 1:
        print("--older-than deve ser >= 0 e --limit >= 1")
        return 1

    configure_logging()
    client = MercadoPagoClient.from_config()
    resolver = CredentialResolver(fallback_access_token=MP_ACCESS_TOKEN)

    db = SessionLocal()
    try:
        summary = sweep_pending_orders(
            db,
            client=client,
            resolver=resolver,
            older_than_minutes=args.older_than,
            limit=args.limit,
        )
    finally:
        db.close()

    checked = sum(summary.values())
    details = " ".join(f"{outcome}={count}" for outcome, count in sorted(summary.items()))
    print(f"Pedidos verificados: {checked} {details}".rstrip())
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
