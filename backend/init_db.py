"""Initialize database with sample data."""
import sys
from sqlalchemy.orm import Session
from pricelab.database import SessionLocal, engine, Base
from pricelab.models import User, Listing, PriceHistory
from pricelab.middleware.auth import hash_api_key

SAMPLE_LISTINGS = [
    # id, category, brand, price, views, watchers
    ("sample-001", "sneakers", "nike", 120.0, 340, 21),
    ("sample-002", "sneakers", "adidas", 95.0, 210, 12),
    ("sample-003", "sneakers", "nike", 150.0, 95, 4),
    ("sample-004", "handbags", "coach", 220.0, 180, 15),
    ("sample-005", "handbags", "kate-spade", 160.0, 60, 3),
    ("sample-006", "watches", "seiko", 310.0, 410, 30),
]


def init_database():
    """Initialize database with a sample user and a handful of active listings."""
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)

    db: Session = SessionLocal()

    try:
        # Check if user already exists
        existing_user = db.query(User).first()
        if existing_user:
            print("✓ Database already initialized")
            return

        # Create test user with API key
        test_api_key = "test-key-123"
        print(f"\nCreating test user with API key: {test_api_key}")

        user = User(api_key_hash=hash_api_key(test_api_key))
        db.add(user)
        db.commit()
        print(f"✓ Created user with ID: {user.id}")

        print("\nCreating sample listings...")
        for listing_id, category, brand, price, views, watchers in SAMPLE_LISTINGS:
            db.add(Listing(
                id=listing_id,
                user_id=user.id,
                category_id=category,
                brand=brand,
                current_price=price,
                original_price=price,
                views=views,
                watchers=watchers,
                competitor_prices=[],
            ))
            db.add(PriceHistory(listing_id=listing_id, new_price=price))
        db.commit()
        print(f"✓ Created {len(SAMPLE_LISTINGS)} listings")

        print("\n" + "="*50)
        print("✓ Database initialized successfully!")
        print("="*50)
        print(f"\nTest API Key: {test_api_key}")
        print("Try it with curl:")
        print(f'  curl -H "x-api-key: {test_api_key}" http://localhost:8000/learning/experiments')
        print("\n" + "="*50)

    except Exception as e:
        print(f"✗ Error initializing database: {e}")
        db.rollback()
        sys.exit(1)
    finally:
        db.close()


if __name__ == "__main__":
    init_database()
