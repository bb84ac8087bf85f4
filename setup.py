from setuptools import setup


setup(
    name="roster-doctor",
    version="0.3.0",
    description="Local validation, rule suggestion and search for client, worker and task scheduling sheets",
    packages=["roster_doctor"],
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "streamlit",
        "requests",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "test": ["pytest"],
        "all": ["xlrd"],
    },
    entry_points={
        "console_scripts": [
            "roster-doctor=roster_doctor.cli:main",
        ]
    },
)
