from setuptools import setup, find_packages

def parse_requirements(requirements):
    with open(requirements) as f:
        return [l.strip('\n') for l in f if l.strip('\n') and not l.startswith('#')]

requirements = parse_requirements("requirements.txt")

setup(
    name='crm_chat_backend',
    version='0.1.0',
    install_requires=requirements,
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.24",
            "httpx>=0.27",
        ],
    },
    packages=find_packages(include=["crm_backend", "crm_backend.*", "crm_types", "crm_types.*"]),
    package_data={
        "crm_backend": ["error_registry.yaml"],
    },
    entry_points={
        "console_scripts": [
            "crm-chat=crm_backend.server:main",
        ],
    }
)
