"""Static subscription package catalog."""

from typing import Iterable, List, Optional

from .models import Package


PACKAGES = (
    Package(id="p1", name="Starter - 10 Mbps", speed=10, price=500, validity_days=30, data_limit_gb=100),
    Package(id="p2", name="Starter Plus - 10 Mbps", speed=10, price=550),
    Package(id="p3", name="Basic - 15 Mbps", speed=15, price=600),
    Package(id="p4", name="Basic Plus - 20 Mbps", speed=20, price=650),
    Package(id="p5", name="Standard - 25 Mbps", speed=25, price=750),
    Package(id="p6", name="Standard Plus - 30 Mbps", speed=30, price=800),
    Package(id="p7", name="Elite - 35 Mbps", speed=35, price=900),
    Package(id="p8", name="Elite Plus - 40 Mbps", speed=40, price=1000),
    Package(id="p9", name="Platinum - 45 Mbps", speed=45, price=1050),
    Package(id="p10", name="Diamond - 50 Mbps", speed=50, price=1200),
    Package(id="p11", name="Diamond Plus - 60 Mbps", speed=60, price=1500),
    Package(id="p12", name="Premium - 80 Mbps", speed=80, price=1800),
    Package(id="p13", name="Premium Plus - 100 Mbps", speed=100, price=2000),
    Package(id="p14", name="CATV - 300 Taka", speed=0, price=300),
)


class Catalog:
    """Read-only package lookup."""

    def __init__(self, packages: Iterable[Package] = PACKAGES):
        self._packages: List[Package] = list(packages)
        self._by_id = {package.id: package for package in self._packages}

    def list(self) -> List[Package]:
        return list(self._packages)

    def find_package(self, package_id: Optional[str]) -> Optional[Package]:
        """Return the package or None; callers show an unknown package instead of failing."""
        if not package_id:
            return None
        return self._by_id.get(package_id)

    def default_package(self) -> Optional[Package]:
        return self._packages[0] if self._packages else None

    def internet_packages(self) -> List[Package]:
        """Packages that carry bandwidth (excludes TV-only tiers)."""
        return [package for package in self._packages if package.speed > 0]
