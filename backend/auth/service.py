from typing import Any, Dict, Optional

from .repository import get_user_from_access_token as _repo_get_user_from_token

def display_name(email: Optional[str], metadata: Optional[Dict[str, Any]]) -> str:
    """Nom affiché: full_name > prénom + nom > partie locale de l'email."""
    metadata = metadata or {}
    full_name = str(metadata.get("full_name") or metadata.get("name") or "").strip()
    if full_name:
        return full_name
    parts = [str(metadata.get(k) or "").strip() for k in ("first_name", "last_name")]
    joined = " ".join(p for p in parts if p)
    if joined:
        return joined
    return (email or "").split("@")[0]

# --- Intégration sécurité ---

def get_user_from_token(access_token: str) -> Dict[str, Any]:
    """Normalise user issu de supabase.auth.get_user(access_token):
    - Retourne {id, email, full_name, metadata, token}
    - id = identifiant du fournisseur d'identité (clé users.auth_user_id)
    """
    raw = _repo_get_user_from_token(access_token)
    email = raw.get("email")
    metadata = raw.get("user_metadata") or {}
    return {
        "id": raw.get("id"),
        "email": email,
        "full_name": display_name(email, metadata),
        "metadata": metadata,
        "token": access_token,
    }
