"""Concrete persistence providers implementing joconde_sync.interfaces."""
