from setuptools import setup, find_packages

package_name = 'sign_client'

setup(
    name=package_name,
    version='1.0.0',
    packages=find_packages(exclude=['tests', 'tests.*']),
    python_requires='>=3.9',
    install_requires=[
        'setuptools',
        'numpy>=1.24',
        'opencv-python>=4.8',
        'mediapipe>=0.10.9',
        'httpx>=0.25.0',
    ],
    extras_require={
        'test': ['pytest>=7.0'],
    },
    zip_safe=True,
    maintainer='sign_client developers',
    description='Real-time sign language word recognition client',
    license='MIT',
    entry_points={
        'console_scripts': [
            'sign_client = sign_client.main:main',
        ],
    },
)
