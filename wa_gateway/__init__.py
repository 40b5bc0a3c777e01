"""
WhatsApp broadcast gateway.

A WebSocket hub that relays transport session state to dashboard clients,
runs broadcast jobs and delivers scheduled messages.
"""
