from __future__ import annotations

from pathlib import Path
from setuptools import find_packages, setup

BASE_DIR = Path(__file__).parent
README = (BASE_DIR / "readme.md").read_text(encoding="utf-8") if (BASE_DIR / "readme.md").exists() else ""

setup(
    name="checkin-kiosk",
    version="0.1.0",
    description="Check-in/check-out kiosk core: QR payload decoding, scan de-duplication and session control.",
    long_description=README,
    long_description_content_type="text/markdown",
    author="Hamidur",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "python-dotenv>=1.0.0",
        "requests>=2.31.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
        ]
    },
    entry_points={
        "console_scripts": [
            "checkin-kiosk=checkin_kiosk.main:main",
        ]
    },
)
