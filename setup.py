from setuptools import find_packages, setup

setup(
    name="a11y-auditor",
    version="0.1.0",
    description="Component-attributed web accessibility scanner built on axe-core and Playwright.",
    long_description=open("README.md", encoding="utf-8").read(),
    long_description_content_type="text/markdown",
    packages=find_packages(include=["a11y_auditor", "a11y_auditor.*"]),
    install_requires=[
        "playwright",
        "backoff>=2.0",
        "toml",
        "jinja2",
    ],
    extras_require={
        "test": ["pytest", "pytest-mock"],
        "dev": ["black"],  # Code formatter for linting
    },
    entry_points={
        "console_scripts": [
            "a11y-auditor=a11y_auditor.cli_app:main",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Operating System :: Microsoft :: Windows",
        "Operating System :: POSIX :: Linux",
        "Operating System :: MacOS :: MacOS X",
        "Topic :: Software Development :: Quality Assurance",
        "Topic :: Software Development :: Testing",
    ],
    keywords="accessibility, a11y, wcag, axe-core, playwright, react",
    python_requires=">=3.9",
)
