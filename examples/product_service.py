from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Any, Optional

from rich import get_console
from sqlalchemy import String, select
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column

from dynamic_datasource.config import RoutingConfig
from dynamic_datasource.routing import RoutingSyncSessionMaker

console = get_console()


class Base(DeclarativeBase):
    pass


class Product(Base):
    __tablename__ = "product"
    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(50))
    price: Mapped[int]


def build_maker(workdir: Path) -> RoutingSyncSessionMaker:
    """Create a primary and two replicas, each a SQLite file."""
    config = RoutingConfig.from_mapping(
        {
            "pools": {
                "master": {"url": f"sqlite:///{workdir / 'master.db'}", "role": "write"},
                "slave_alpha": {"url": f"sqlite:///{workdir / 'slave_alpha.db'}", "role": "read"},
                "slave_beta": {"url": f"sqlite:///{workdir / 'slave_beta.db'}", "role": "read"},
            },
        },
    )
    return RoutingSyncSessionMaker(routing_config=config, session_config={"expire_on_commit": False})


def make_service(maker: RoutingSyncSessionMaker) -> Any:
    routed = maker.interceptor

    class ProductService:
        @routed
        def get_product(self, product_id: int) -> Optional[Product]:
            with maker() as session:
                return session.get(Product, product_id)

        @routed
        def get_all_products(self) -> list[Product]:
            with maker() as session:
                return list(session.scalars(select(Product).order_by(Product.id)))

        @routed
        def add_product(self, product: Product) -> Product:
            with maker() as session:
                session.add(product)
                session.commit()
                return product

        @routed
        def update_product(self, product_id: int, price: int) -> Optional[Product]:
            with maker() as session:
                product = session.get(Product, product_id)
                if product is not None:
                    product.price = price
                    session.commit()
                return product

        @routed
        def delete_product(self, product_id: int) -> bool:
            with maker() as session:
                product = session.get(Product, product_id)
                if product is None:
                    return False
                session.delete(product)
                session.commit()
                return True

    return ProductService()


def run_script() -> None:
    """Show which database serves each service call."""
    with TemporaryDirectory() as tmp:
        maker = build_maker(Path(tmp))
        for key in maker.registry:
            engine = maker.registry.resolve(key)
            Base.metadata.create_all(engine)
            # label each database so reads show where they were served from
            with Session(engine) as session:
                session.add(Product(id=1, name=f"catalog@{key}", price=10))
                session.commit()

        service = make_service(maker)

        # 1) Reads are spread over the replicas.
        for _ in range(3):
            product = service.get_product(1)
            console.print(f"get_product(1) -> {product.name if product else None}")

        # 2) Writes go to the primary only.
        service.add_product(Product(id=2, name="keyboard", price=30))
        service.update_product(1, price=12)
        with Session(maker.primary_engine) as session:
            console.print(f"master holds {session.scalars(select(Product.name)).all()}")

        # 3) Replicas never saw the write.
        console.print(f"get_all_products() -> {[p.name for p in service.get_all_products()]}")
        console.print(f"delete_product(2) -> {service.delete_product(2)}")

        maker.close_all()


if __name__ == "__main__":
    run_script()
