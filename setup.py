from setuptools import setup

setup(
    name="scan-relay",
    version="0.1.0",
    description="Upload relay that submits files to VirusTotal and returns the scan result",
    python_requires=">=3.10",
    package_dir={
        "scan_relay": "backend/scan_relay",
        "scan_uploader": "sdk/scan_uploader",
    },
    packages=[
        "scan_relay",
        "scan_relay.api",
        "scan_relay.core",
        "scan_relay.services",
        "scan_uploader",
    ],
    install_requires=[
        "fastapi>=0.118",
        "starlette>=0.48",
        "pydantic>=2.5",
        "pydantic-settings>=2.1",
        "python-multipart>=0.0.13",
        "httpx>=0.26.0",
        "prometheus-client>=0.19",
        "uvicorn>=0.27",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "scan-relay=scan_relay.main:main",
            "scan-uploader=scan_uploader.cli:main",
        ],
    },
)
