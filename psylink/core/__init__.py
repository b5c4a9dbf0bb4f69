"""Noyau transverse : configuration, contexte, erreurs, sécurité."""
