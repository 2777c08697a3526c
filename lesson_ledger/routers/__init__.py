from lesson_ledger.routers import groups, lessons

__all__ = [
    'groups',
    'lessons',
]
