from setuptools import setup, find_packages

setup(
    name="interview-capture",
    version="0.1.0",
    description="Live interview audio capture streamed to a speech-to-text proxy",
    author="",
    python_requires=">=3.8",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "pyaudio>=0.2.11",
        "numpy>=1.21.0",
        "soundcard>=0.4.2",
        "rich>=12.5.0",
        "pyyaml>=6.0.0",
        "pypubsub>=4.0.3",
        "aiohttp>=3.8.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "interview-capture=interview_capture.main:main",
        ],
    },
)
