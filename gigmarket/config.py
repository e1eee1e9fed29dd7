import os
from dotenv import load_dotenv

load_dotenv()

class Config:
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///gigmarket.db")
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY")

    # share of the order subtotal kept by the marketplace
    PLATFORM_FEE_RATE = float(os.getenv("PLATFORM_FEE_RATE", 0.10))
    DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD")

    # used when a package snapshot carries no delivery time
    DEFAULT_DELIVERY_DAYS = int(os.getenv("DEFAULT_DELIVERY_DAYS", 7))

    # distinct flags before a review is pulled from the public listing
    REVIEW_FLAG_THRESHOLD = int(os.getenv("REVIEW_FLAG_THRESHOLD", 3))

class DevelopmentConfig(Config):
    DEBUG = True

class ProductionConfig(Config):
    DEBUG = False

class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    JWT_SECRET_KEY = "test-secret-key-with-enough-length-for-hs256"
