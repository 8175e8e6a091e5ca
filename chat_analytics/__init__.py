"""
Chat analytics package - WhatsApp support chat classification and metrics
"""
__version__ = "0.1.0"
