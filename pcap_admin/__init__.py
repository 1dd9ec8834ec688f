"""Administration tooling for pcap service users and API keys."""
