"""Couche service du domaine Membres.
Fait le lien entre l'utilisateur authentifié (Supabase Auth) et la fiche membre (table users).
"""
from typing import Any, Dict

from fastapi import HTTPException

from . import repository

def resolve_member(auth_user: Dict[str, Any]) -> Dict[str, Any]:
    """Fiche membre correspondant à l'email de la session; 404 si inconnue."""
    member = repository.get_user_by_email(auth_user.get("email") or "")
    if not member:
        raise HTTPException(status_code=404, detail="Membre introuvable")
    return member

def find_or_create_member(name: str) -> Dict[str, Any]:
    """Utilisé par l'import: réutilise le membre existant (même nom) ou le crée sans email."""
    name = (name or "").strip()
    if not name:
        raise ValueError("nom du membre manquant")
    member = repository.get_user_by_name(name)
    if member:
        return member
    member = repository.insert_user(name)
    if not member:
        raise ValueError(f"création du membre '{name}' impossible")
    return member
