from setuptools import setup
import re
import os

# redfa imports lark and graphviz at the top, so read the version without importing it
with open(os.path.join(os.path.dirname(__file__), "redfa.py"), "r") as f:
    redfa_version = re.search(r'^__version__ = "([^"]+)"', f.read(), re.M).group(1)

with open(os.path.join(os.path.dirname(__file__), "README.md"), "r") as f:
    readme = f.read()

setup(
        name="redfa",
        version=redfa_version,
        py_modules=["redfa"],
        description="Builds DFAs straight from regular expressions using the followpos construction",
        entry_points={
            "console_scripts": ["redfa=redfa:main"]
        },
        install_requires=["lark>=1.1,<2", "graphviz>=0.20"],
        author="the redfa developers",

        license="GPLv3",
        long_description=readme,
        long_description_content_type="text/markdown",

        keywords="regex dfa automaton followpos cli tool",

        extras_require={
            "tests": ["pytest", "hypothesis"],
            "coverage": ["pytest-cov"]
        },
        python_requires=">=3.8",

        classifiers=[
            "Development Status :: 3 - Alpha",
            "Environment :: Console",
            "License :: OSI Approved :: GNU General Public License v3 (GPLv3)",
            "Intended Audience :: Developers",
            "Intended Audience :: Education",
            "Programming Language :: Python :: 3",
            "Topic :: Software Development :: Compilers"
        ]
)
