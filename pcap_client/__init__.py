"""HTTP client and command line interface for the pcap query service."""
