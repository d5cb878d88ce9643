"""Configuration management."""
import os
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


class Config:
    """Application configuration."""

    # Backend
    API_BASE_URL = os.getenv("API_BASE_URL", "")
    DEFAULT_TIMEOUT = int(os.getenv("DEFAULT_TIMEOUT", "10"))

    # Identity provider
    COGNITO_REGION = os.getenv("COGNITO_REGION", "us-east-1")
    COGNITO_CLIENT_ID = os.getenv("COGNITO_CLIENT_ID", "")
    COGNITO_ENDPOINT = os.getenv("COGNITO_ENDPOINT")

    @property
    def IDENTITY_ENDPOINT(self):
        """Build the Cognito user-pool endpoint for the configured region."""
        if self.COGNITO_ENDPOINT:
            return self.COGNITO_ENDPOINT
        return f"https://cognito-idp.{self.COGNITO_REGION}.amazonaws.com/"

    # CLI credentials
    CATALOG_EMAIL = os.getenv("CATALOG_EMAIL")
    CATALOG_PASSWORD = os.getenv("CATALOG_PASSWORD")

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
