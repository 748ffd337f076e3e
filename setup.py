import setuptools

setuptools.setup(
    name="blri",
    version="0.3.0",
    author="The blri contributors",
    description=("Bouffalo ROM image helper: boot image patching and "
                 "serial flashing"),
    license="Apache Software License",
    packages=setuptools.find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        'click',
        'intelhex>=2.2.1',
        'pyserial>=3.4',
        'pyelftools>=0.29',
        'PyYAML>=5.1',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        "console_scripts": ["blri=blri.main:blri"]
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Development Status :: 4 - Beta",
        "Topic :: Software Development :: Embedded Systems",
        "License :: OSI Approved :: Apache Software License",
    ],
)
