"""
BSL Bot - WhatsApp assistant for occupational medical certificates
"""
