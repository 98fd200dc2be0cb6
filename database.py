import logging
from typing import Optional

from supabase import create_client, Client

from config import SUPABASE_URL, SUPABASE_KEY

logger = logging.getLogger(__name__)


class DatabaseError(Exception):
    """Exceção customizada para erros de banco de dados"""
    pass


def create_supabase_client() -> Optional[Client]:
    """Cria o cliente Supabase, ou None quando o .env não está configurado"""
    if not SUPABASE_URL or not SUPABASE_KEY:
        logger.warning(
            "SUPABASE_URL e SUPABASE_ANON_KEY não encontradas no .env; "
            "persistência indisponível"
        )
        return None
    return create_client(SUPABASE_URL, SUPABASE_KEY)


supabase: Optional[Client] = create_supabase_client()
