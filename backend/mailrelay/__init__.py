"""mailrelay - multi-provider transactional email with delivery tracking"""
