"""
Stayline WhatsApp

Inbound WhatsApp pipeline for short-term rental hosts: webhook parsing,
conversation tracking and confidence-gated AI replies.
"""
