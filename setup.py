from setuptools import setup


setup(
    name="consignment-recon",
    version="0.1.0",
    description="Reconcile fruit consignment load reports against market sales reports",
    packages=["consignment_recon"],
    install_requires=[
        "pandas",
        "chardet",
        "openpyxl",
        "streamlit",
    ],
    extras_require={
        "excel-legacy": ["xlrd"],
        "ods": ["odfpy"],
        "all": ["xlrd", "odfpy"],
    },
    entry_points={
        "console_scripts": [
            "consignment-recon=consignment_recon.cli:main",
        ]
    },
)
