from setuptools import setup


setup(
    name="roster-doctor",
    version="0.3.0",
    description="Map, validate and de-duplicate messy client roster exports before import",
    packages=["roster_doctor"],
    install_requires=[
        "pandas",
        "chardet",
        "rapidfuzz",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "roster-doctor=roster_doctor.cli:main",
        ]
    },
)
