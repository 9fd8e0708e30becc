"""
Slash command cogs, loaded as extensions by bot.py
"""
