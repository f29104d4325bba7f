"""
Server side of the relay: artifact lifecycle, transcription, context window, completion streaming.
"""
