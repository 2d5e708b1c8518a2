import os
from functools import lru_cache

from dotenv import load_dotenv
from supabase import create_client, Client


load_dotenv()


@lru_cache(maxsize=1)
def get_supabase() -> Client:
    supabase_url = os.getenv("PUBLIC_SUPABASE_URL")
    supabase_key = os.getenv("SECRET_API_KEY")

    if not supabase_url or not supabase_key:
        raise RuntimeError(
            "PUBLIC_SUPABASE_URL and SECRET_API_KEY must be set to reach Supabase."
        )

    return create_client(supabase_url, supabase_key)
