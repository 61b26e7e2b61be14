"""Stayline WhatsApp webhook service."""
