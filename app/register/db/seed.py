from decimal import Decimal

from app.register.repos.products import ProductRepository


SAMPLE_PRODUCTS = [
    ("Adj1", Decimal("1.00")),
    ("Bat45", Decimal("45.00")),
    ("Bat65", Decimal("65.00")),
    ("Bat80", Decimal("80.00")),
    ("Bat100", Decimal("100.00")),
    ("BatUp5", Decimal("5.00")),
    ("CoreDep16", Decimal("16.00")),
    ("CoreDep20", Decimal("20.00")),
    ("RCoreDep16", Decimal("-16.00")),
    ("RCoreDep20", Decimal("-20.00")),
    ("OAdj1", Decimal("-1.00")),
    ("OAdj5", Decimal("-5.00")),
    ("OJB-1", Decimal("-1.00")),
    ("OJB-9", Decimal("-9.00")),
    ("OJB-10c", Decimal("-0.10")),
    ("OJB-20c", Decimal("-0.20")),
]


def seed_sample_products(db) -> int:
    repo = ProductRepository(db)
    if repo.count() > 0:
        return 0
    repo.bulk_add(SAMPLE_PRODUCTS)
    return len(SAMPLE_PRODUCTS)
