# utils/config.py

import os
import logging
from dotenv import load_dotenv
from typing import Dict, Any, Union
from sqlalchemy.engine import URL

# Initialize logger
logger = logging.getLogger(__name__)


def is_running_on_streamlit_cloud() -> bool:
    """Detect if running on Streamlit Cloud"""
    try:
        import streamlit as st
        return hasattr(st, 'secrets') and "DB_CONFIG" in st.secrets
    except Exception:
        return False


class Config:
    """Centralized configuration management for the Postal Quality Console"""

    VALID_REPLACE_MODES = ('cancel', 'delete')

    def __init__(self):
        self.is_cloud = is_running_on_streamlit_cloud()
        self._load_config()

    def _load_config(self):
        """Load configuration based on environment"""
        if self.is_cloud:
            self._load_cloud_config()
        else:
            self._load_local_config()

        # Common configuration
        self._load_app_config()

    def _load_cloud_config(self):
        """Load configuration from Streamlit Cloud secrets"""
        import streamlit as st

        # Database configuration
        self.db_config = dict(st.secrets["DB_CONFIG"])
        self.database_url = self.db_config.pop("url", None)

        logger.info("☁️  Running in STREAMLIT CLOUD")
        self._log_config_status()

    def _load_local_config(self):
        """Load configuration from local environment"""
        # Load .env file
        load_dotenv()

        # A full SQLAlchemy URL wins over the discrete DB_* settings
        self.database_url = os.getenv("DATABASE_URL")

        self.db_config = {
            "host": os.getenv("DB_HOST"),
            "port": int(os.getenv("DB_PORT", "3306")),
            "user": os.getenv("DB_USER"),
            "password": os.getenv("DB_PASSWORD"),
            "database": os.getenv("DB_NAME", os.getenv("DB_DATABASE", "postal_quality"))
        }

        # Validate required DB config
        if not self.database_url and not all(
            [self.db_config["host"], self.db_config["user"], self.db_config["password"]]
        ):
            raise ValueError("Missing required database configuration. Please check .env file.")

        logger.info("💻 Running in LOCAL environment")
        self._log_config_status()

    def _load_app_config(self):
        """Load application-specific configuration"""
        self.app_config = {
            # Plan engine
            "DEFAULT_WEEKLY_EVENT_CAP": int(os.getenv("DEFAULT_WEEKLY_EVENT_CAP", "5")),
            "REPLACE_MODE": os.getenv("REPLACE_MODE", "cancel").lower(),
            "PLAN_ALGORITHM_VERSION": os.getenv("PLAN_ALGORITHM_VERSION", "2.0"),

            # Performance
            "CACHE_TTL_SECONDS": int(os.getenv("CACHE_TTL_SECONDS", "300")),  # 5 minutes
            "DB_POOL_SIZE": int(os.getenv("DB_POOL_SIZE", "5")),
            "DB_POOL_RECYCLE": int(os.getenv("DB_POOL_RECYCLE", "3600")),

            # Features
            "ENABLE_CSV_EXPORTS": os.getenv("ENABLE_CSV_EXPORTS", "true").lower() == "true",
            "ENABLE_DRAFT_DELETE": os.getenv("ENABLE_DRAFT_DELETE", "true").lower() == "true",
        }

        if self.app_config["REPLACE_MODE"] not in self.VALID_REPLACE_MODES:
            logger.warning(
                f"⚠️  Unknown REPLACE_MODE '{self.app_config['REPLACE_MODE']}', falling back to 'cancel'"
            )
            self.app_config["REPLACE_MODE"] = "cancel"

    def _log_config_status(self):
        """Log configuration status for debugging"""

        issues = []  # Track issues for summary

        # ═══════════════════════════════════════════════════════════════
        # DATABASE
        # ═══════════════════════════════════════════════════════════════
        logger.info("─" * 55)
        logger.info("📊 DATABASE CONFIGURATION")

        if self.database_url:
            # Never log credentials embedded in the URL
            scheme = self.database_url.split("://", 1)[0]
            logger.info(f"   ✅ URL: {scheme}://{'*' * 8}")
        else:
            db_host = self.db_config.get('host')
            db_user = self.db_config.get('user')
            db_pass = self.db_config.get('password')
            db_name = self.db_config.get('database')
            db_port = self.db_config.get('port', 3306)

            if all([db_host, db_user, db_pass, db_name]):
                logger.info(f"   ✅ Host: {db_host}:{db_port}")
                logger.info(f"   ✅ Database: {db_name}")
                logger.info(f"   ✅ User: {db_user}")
                logger.info(f"   ✅ Password: {'*' * 8} (configured)")
            else:
                missing = []
                if not db_host: missing.append('host')
                if not db_user: missing.append('user')
                if not db_pass: missing.append('password')
                if not db_name: missing.append('database')
                logger.error(f"   ❌ Missing: {', '.join(missing)}")
                issues.append(f"Database: missing {', '.join(missing)}")

        # ═══════════════════════════════════════════════════════════════
        # SUMMARY
        # ═══════════════════════════════════════════════════════════════
        logger.info("─" * 55)
        if issues:
            logger.warning(f"⚠️  CONFIGURATION ISSUES FOUND ({len(issues)}):")
            for issue in issues:
                logger.warning(f"   • {issue}")
            logger.info("─" * 55)
        else:
            logger.info("✅ ALL REQUIRED CONFIGURATIONS LOADED SUCCESSFULLY")
            logger.info("─" * 55)

    def get_db_config(self) -> Dict[str, Any]:
        """Get database configuration"""
        return self.db_config.copy()

    def get_database_url(self) -> Union[str, URL]:
        """Get SQLAlchemy URL, built from DB_* settings when no URL is configured"""
        if self.database_url:
            return self.database_url
        db = self.db_config
        return URL.create(
            "mysql+pymysql",
            username=db['user'],
            password=db['password'],
            host=db['host'],
            port=int(db.get('port', 3306)),
            database=db['database'],
        )

    def get_app_setting(self, key: str, default: Any = None) -> Any:
        """Get application setting"""
        return self.app_config.get(key, default)

    def is_feature_enabled(self, feature: str) -> bool:
        """Check if a feature is enabled"""
        return self.app_config.get(f"ENABLE_{feature.upper()}", True)


# Create singleton instance
config = Config()

# Export commonly used values
IS_RUNNING_ON_CLOUD = config.is_cloud
DB_CONFIG = config.db_config
APP_CONFIG = config.app_config


# Export all
__all__ = [
    'config',
    'Config',
    'IS_RUNNING_ON_CLOUD',
    'DB_CONFIG',
    'APP_CONFIG',
]
