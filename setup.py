from __future__ import annotations

from pathlib import Path
from setuptools import find_packages, setup

BASE_DIR = Path(__file__).parent
README = (BASE_DIR / "readme.md").read_text(encoding="utf-8") if (BASE_DIR / "readme.md").exists() else ""

setup(
    name="event-checkin",
    version="0.1.0",
    description="Event registration, badge issuing and QR check-in backend.",
    long_description=README,
    long_description_content_type="text/markdown",
    author="Hamidur",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    package_data={"event_checkin.data": ["migrations/*.sql"]},
    include_package_data=True,
    python_requires=">=3.10",
    install_requires=[
        "Pillow>=10.0.0",
        "qrcode>=7.4",
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
            "event-checkin=event_checkin.main:main",
        ]
    },
)
