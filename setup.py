import setuptools
import os

# READMEファイルがあれば読み込む
long_description = ""
if os.path.exists("README.md"):
    with open("README.md", "r", encoding="utf-8") as fh:
        long_description = fh.read()

# パッケージ設定
setuptools.setup(
    name="gamearc",
    version="0.1.0",
    author="gamearc Team",
    description="Read-only access to game archives (VPK / Godot PCK / Ren'Py RPA) and their textures",
    long_description=long_description,
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    package_dir={"": "."},
    packages=setuptools.find_packages(where=".", exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "numpy>=1.20",
        "Pillow>=8.0",
        "psutil>=5.8",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    include_package_data=True,
)
