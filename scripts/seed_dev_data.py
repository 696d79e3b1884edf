"""
Seed the local database with dev users and a small product catalog.

Usage:
  python scripts/seed_dev_data.py

This script is idempotent: running it multiple times will upsert the same
records based on unique fields (username for users, owner and name for products).
Prints a bearer token per user for calling the API locally.
"""

from quotehub.auth.security import create_access_token
from quotehub.db import SessionLocal, Base, engine
from quotehub.models.models import Product, User
from quotehub.services.decimal_bridge import to_storage


USERS = [
    ("estimator.one", "estimator.one@example.com"),
    ("estimator.two", "estimator.two@example.com"),
]

# name, unit, unit_price, description
PRODUCTS = [
    ("Drywall sheet 4x8", "sheet", "14.99", "1/2 inch gypsum board"),
    ("Joint compound", "bucket", "18.50", None),
    ("Ceramic floor tile", "box", "42.00", "12x12, 10 per box"),
    ("Interior paint", "gallon", "36.75", "Eggshell finish"),
    ("2x4 stud 8ft", "each", "4.25", None),
]


def ensure_user(session, username: str, email: str) -> User:
    user = session.query(User).filter(User.username == username).first()
    if user:
        user.email = email
        user.is_active = True
        session.flush()
        return user
    user = User(username=username, email=email, is_active=True)
    session.add(user)
    session.flush()
    return user


def ensure_product(session, owner_id, name: str, unit: str, unit_price: str, description=None) -> Product:
    product = session.query(Product).filter(Product.created_by == owner_id, Product.name == name).first()
    if product is None:
        product = Product(created_by=owner_id, name=name)
        session.add(product)
    product.unit = unit
    product.unit_price = to_storage(unit_price)
    product.description = description
    session.flush()
    return product


def seed(session) -> dict:
    """Upsert the dev records and return {username: user_id}."""
    users = {username: ensure_user(session, username, email).id for username, email in USERS}
    # Catalogs are per user; every dev user gets the same starter catalog
    for user_id in users.values():
        for name, unit, price, description in PRODUCTS:
            ensure_product(session, user_id, name, unit, price, description)
    session.commit()
    return users


def main():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        users = seed(session)
    finally:
        session.close()

    print(f"Seeded {len(users)} users with {len(PRODUCTS)} products each")
    for username, user_id in users.items():
        print(f"{username}: Bearer {create_access_token(str(user_id))}")


if __name__ == "__main__":
    main()
