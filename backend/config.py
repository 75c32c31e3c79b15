# backend.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=True)

"""
Configuration centrale du backend.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe, LearnWorlds)
- Paramètres du cache catalogue, du checkout et du rate limit LearnWorlds
- Sécurité cookies, CORS/hosts
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _int_env(name: str, default: int) -> int:
    try:
        return int(_clean_env(os.getenv(name) or "") or default)
    except ValueError:
        return default

def _float_env(name: str, default: float) -> float:
    try:
        return float(_clean_env(os.getenv(name) or "") or default)
    except ValueError:
        return default

# Supabase: URL et clés (anon pour les lectures, service pour les écritures)
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or os.getenv("NEXT_PUBLIC_SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(
    os.getenv("SUPABASE_ANON_KEY") or os.getenv("NEXT_PUBLIC_SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or ""
)
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Stripe: clé privée, secret webhook, devise
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")
STRIPE_CURRENCY = _clean_env(os.getenv("STRIPE_CURRENCY") or "usd").lower()

# Checkout: chemins de retour (préfixés par l'origine de la requête) et durée de vie de la session
CHECKOUT_SUCCESS_PATH = os.getenv("CHECKOUT_SUCCESS_PATH", "/success")
CHECKOUT_CANCEL_PATH = os.getenv("CHECKOUT_CANCEL_PATH", "/cancel")
CHECKOUT_SESSION_TTL_MINUTES = _int_env("CHECKOUT_SESSION_TTL_MINUTES", 30)

# LearnWorlds: API admin v2, jetons et débit autorisé
LEARNWORLDS_API_URL = _clean_env(
    os.getenv("LEARNWORLDS_API_URL") or "https://courses.getgreencardonyourown.com/admin/api/v2"
).rstrip("/")
LEARNWORLDS_AUTH_TOKEN = _clean_env(os.getenv("LEARNWORLDS_AUTH_TOKEN") or "")
LEARNWORLDS_CLIENT_TOKEN = _clean_env(os.getenv("LEARNWORLDS_CLIENT_TOKEN") or "")
LEARNWORLDS_SCHOOL_URL = _clean_env(
    os.getenv("LEARNWORLDS_SCHOOL_URL") or "https://courses.getgreencardonyourown.com"
).rstrip("/")
# 2 appels/s ~ un appel toutes les 500 ms
LEARNWORLDS_RATE_PER_SECOND = _float_env("LEARNWORLDS_RATE_PER_SECOND", 2.0)
LEARNWORLDS_TIMEOUT = _float_env("LEARNWORLDS_TIMEOUT", 10.0)

# Catalogue: TTL du cache et nombre d'échecs consécutifs avant l'entrée de secours
CATALOG_TTL_SECONDS = _int_env("CATALOG_TTL_SECONDS", 300)
CATALOG_MAX_FAILURES = _int_env("CATALOG_MAX_FAILURES", 3)
# délai avant de retenter la base quand on sert l'instantané précédent
CATALOG_RETRY_SECONDS = _int_env("CATALOG_RETRY_SECONDS", 30)

# Webhooks entrants: revalidation du catalogue (Supabase) et synchronisation des utilisateurs
REVALIDATE_TOKEN = _clean_env(os.getenv("REVALIDATE_TOKEN") or "")
IDENTITY_WEBHOOK_SECRET = _clean_env(os.getenv("IDENTITY_WEBHOOK_SECRET") or os.getenv("CLERK_WEBHOOK_SECRET") or "")

# Cookies / CORS
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "false").lower() == "true")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

BASE_URL = _clean_env(os.getenv("BASE_URL") or "http://localhost:8000")
