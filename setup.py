from setuptools import find_packages, setup

setup(
    name="pcap-service",
    version="0.1.0",
    packages=find_packages(
        include=[
            "pcap_common",
            "pcap_common.*",
            "pcap_persistence",
            "pcap_persistence.*",
            "pcap_jobs",
            "pcap_jobs.*",
            "pcap_pdml",
            "pcap_pdml.*",
            "pcap_server",
            "pcap_server.*",
            "pcap_client",
            "pcap_client.*",
            "pcap_admin",
            "pcap_admin.*",
        ]
    ),
    install_requires=[
        "requests>=2.31.0",
        "fastapi>=0.104.0",
        "uvicorn>=0.24.0",
        "aiosqlite>=0.19.0",
        "click>=8.1.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-xdist>=3.3.0",
            "httpx>=0.25.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "pcap=pcap_client.cli:main",
            "pcap-server=pcap_server.__main__:main",
            "pcap-admin=pcap_admin.cli:cli",
        ],
    },
    python_requires=">=3.11",
)
