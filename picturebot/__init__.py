"""Bot package for PictureBot.

This package contains the Telegram bot that helps users find pictures. Each
message runs through a small waterfall of dialogs: a one-time greeting, intent
routing, and a search flow that queries the picture index and can fall back to
a Bing image search. Conversation state lives in aiogram's FSM storage.
"""
