"""
Goal Tracker - Goal reminder and cycle closure engine for Microsoft Teams.

Runs alongside the goal tracker bot:
- Reminder scheduler (personal and team goals)
- Goal cycle closer
- Deletion sweeper
"""

from setuptools import setup, find_packages

setup(
    name="goal_tracker",
    version="1.0.0",
    description="Goal reminders and cycle closure for the Teams goal tracker bot",
    author="The Goal Tracker Team",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.11",
    install_requires=[
        "botbuilder-core>=4.14.0",
        "botbuilder-schema>=4.14.0",
        "botframework-connector>=4.14.0",
        "azure-data-tables>=12.4.0",
        "azure-core>=1.29.0",
        "fastapi>=0.104.0",
        "uvicorn>=0.24.0",
        "pydantic>=2.5.0",
        "python-dotenv>=1.0.0",
        "tenacity>=8.2.0",
        "croniter>=2.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "httpx>=0.26.0",
        ],
    },
)
