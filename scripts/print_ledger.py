from __future__ import annotations

import argparse
import sys
from pathlib import Path


ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from lesson_ledger.db import SessionLocal
from lesson_ledger.services.ledger_service import get_lesson_ledger, get_lesson_payment_stats


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Print the session ledger and payment stats of one lesson.')
    parser.add_argument('lesson_id', type=int)
    return parser.parse_args()


def main() -> int:
    args = _parse_args()
    db = SessionLocal()
    try:
        ledger = get_lesson_ledger(db, args.lesson_id, bypass_cache=True)
        stats = get_lesson_payment_stats(db, args.lesson_id, bypass_cache=True)
    finally:
        db.close()

    if ledger is None or stats is None:
        print(f'lesson {args.lesson_id} not found', file=sys.stderr)
        return 1

    print(f"{'date':<12}{'status':<13}{'duration':>9}{'paid':>7}{'unpaid':>8}")
    for row in ledger['sessions']:
        print(f"{row['lesson_date']:<12}{row['status']:<13}{row['duration']:>9}{row['paid_minutes']:>7}{row['unpaid_minutes']:>8}")
    print()
    for key in ('paid_minutes', 'used_minutes', 'remaining_minutes', 'debt_minutes', 'unpaid_minutes', 'price_per_minute'):
        print(f'{key:<20}{stats[key]}')
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
