"""Video RAG: question answering over YouTube video transcripts.

This package acquires a transcript for a YouTube video (captions or audio
transcription), splits it into overlapping word chunks, embeds and stores
them, and answers questions grounded in the most similar chunks.
"""
