"""Telephony components for Twilio Media Streams calls.

Carrier audio arrives over a WebSocket as base64 mu-law @ 8kHz; each
connection is driven by one ``CallOrchestrator``.
"""
