import logging
from typing import Dict, Any

from supabase import create_client, Client

from substrack.core.config import settings

logger = logging.getLogger(__name__)


class SupabaseService:
    """Merchant identity lives in Supabase Auth"""

    def __init__(self):
        self.supabase = None
        if settings.supabase_url and settings.supabase_key:
            try:
                self.supabase: Client = create_client(
                    supabase_url=settings.supabase_url,
                    supabase_key=settings.supabase_key
                )
                logger.info("✅ Supabase client initialized successfully")
            except Exception as e:
                logger.warning(f"❌ Failed to initialize Supabase client: {e}")
                self.supabase = None
        else:
            logger.warning("❌ Supabase URL or KEY not provided")

    def _check_client(self):
        if not self.supabase:
            raise RuntimeError("Supabase client not initialized. Check your SUPABASE_URL and SUPABASE_KEY.")

    async def get_user(self, access_token: str) -> Dict[str, Any]:
        """Get user details from access token"""
        self._check_client()
        try:
            response = self.supabase.auth.get_user(access_token)
            return {
                "success": True,
                "user": response.user
            }
        except Exception as e:
            return {
                "success": False,
                "error": str(e)
            }


supabase_service = SupabaseService()
