"""
Pcap Server module.

FastAPI transport over the job manager and the conversion pipeline, with
API key authentication.
"""
