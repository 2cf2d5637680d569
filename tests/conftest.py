"""Shared test fixtures: in-memory database, seeded tenant and API client."""

import pytest
from fastapi.testclient import TestClient

from salonbook.database import Base, create_db_engine, create_session_factory
from salonbook.domain.scheduling.schemas import (
    BlockBooking,
    ServiceBooking,
    ServiceItem,
)
from salonbook.main import create_app
from salonbook.models import (
    Branch,
    Client,
    Company,
    Employee,
    MasterRank,
    Product,
    Service,
    ServicePriceByRank,
    WorkScheduleRule,
)

COMPANY_ID = "company-1"
OTHER_COMPANY_ID = "company-2"
BRANCH_ID = "branch-1"
OTHER_BRANCH_ID = "branch-2"
FOREIGN_BRANCH_ID = "branch-foreign"

JUNIOR_RANK_ID = "rank-junior"
SENIOR_RANK_ID = "rank-senior"

MASTER_ID = "master-anna"  # junior, works Mon-Fri 09:00-18:00
SENIOR_MASTER_ID = "master-olga"  # senior, no schedule rules
UNRANKED_MASTER_ID = "master-new"
FOREIGN_MASTER_ID = "master-foreign"

CLIENT_ID = "client-1"
FOREIGN_CLIENT_ID = "client-foreign"

HAIRCUT_ID = "svc-haircut"  # 45 min
WASH_ID = "svc-wash"  # 15 min
COLORING_ID = "svc-coloring"  # 60 min, no senior price
ODD_ID = "svc-odd"  # 20 min
INACTIVE_ID = "svc-inactive"

SHAMPOO_ID = "prod-shampoo"  # 1500, stock 10
MASK_ID = "prod-mask"  # 2500, stock 1
OTHER_BRANCH_PRODUCT_ID = "prod-other-branch"
INACTIVE_PRODUCT_ID = "prod-inactive"

# 2026-01-05 is a Monday
MONDAY = "2026-01-05"
SATURDAY = "2026-01-10"


@pytest.fixture
def engine():
    engine = create_db_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    seed_tenant(session)
    yield session
    session.close()


@pytest.fixture
def client(engine, db):
    app = create_app(engine=engine)
    return TestClient(app, headers={"X-Company-Id": COMPANY_ID})


def seed_tenant(db):
    db.add_all(
        [
            Company(id=COMPANY_ID, name="Beauty Lab"),
            Company(id=OTHER_COMPANY_ID, name="Competitor"),
        ]
    )
    db.flush()
    db.add_all(
        [
            Branch(id=BRANCH_ID, company_id=COMPANY_ID, name="Downtown"),
            Branch(id=OTHER_BRANCH_ID, company_id=COMPANY_ID, name="Riverside"),
            Branch(id=FOREIGN_BRANCH_ID, company_id=OTHER_COMPANY_ID, name="Elsewhere"),
            MasterRank(id=JUNIOR_RANK_ID, company_id=COMPANY_ID, name="Junior"),
            MasterRank(id=SENIOR_RANK_ID, company_id=COMPANY_ID, name="Senior"),
        ]
    )
    db.flush()
    db.add_all(
        [
            Employee(
                id=MASTER_ID,
                company_id=COMPANY_ID,
                branch_id=BRANCH_ID,
                full_name="Anna",
                master_rank_id=JUNIOR_RANK_ID,
            ),
            Employee(
                id=SENIOR_MASTER_ID,
                company_id=COMPANY_ID,
                branch_id=BRANCH_ID,
                full_name="Olga",
                master_rank_id=SENIOR_RANK_ID,
            ),
            Employee(id=UNRANKED_MASTER_ID, company_id=COMPANY_ID, branch_id=BRANCH_ID, full_name="Trainee"),
            Employee(
                id=FOREIGN_MASTER_ID,
                company_id=OTHER_COMPANY_ID,
                branch_id=FOREIGN_BRANCH_ID,
                full_name="Stranger",
                master_rank_id=JUNIOR_RANK_ID,
            ),
            Client(id=CLIENT_ID, company_id=COMPANY_ID, full_name="Maria", phone="+100000001"),
            Client(id=FOREIGN_CLIENT_ID, company_id=OTHER_COMPANY_ID, full_name="Nobody"),
            Service(id=HAIRCUT_ID, company_id=COMPANY_ID, name="Haircut", duration_min=45),
            Service(id=WASH_ID, company_id=COMPANY_ID, name="Wash", duration_min=15),
            Service(id=COLORING_ID, company_id=COMPANY_ID, name="Coloring", duration_min=60),
            Service(id=ODD_ID, company_id=COMPANY_ID, name="Quick fix", duration_min=20),
            Service(id=INACTIVE_ID, company_id=COMPANY_ID, name="Perm", duration_min=90, is_active=False),
            Product(id=SHAMPOO_ID, company_id=COMPANY_ID, branch_id=BRANCH_ID, name="Shampoo", price=1500, stock_qty=10),
            Product(id=MASK_ID, company_id=COMPANY_ID, branch_id=BRANCH_ID, name="Hair mask", price=2500, stock_qty=1),
            Product(
                id=OTHER_BRANCH_PRODUCT_ID,
                company_id=COMPANY_ID,
                branch_id=OTHER_BRANCH_ID,
                name="Conditioner",
                price=1200,
                stock_qty=5,
            ),
            Product(
                id=INACTIVE_PRODUCT_ID,
                company_id=COMPANY_ID,
                branch_id=BRANCH_ID,
                name="Old gel",
                price=900,
                stock_qty=5,
                is_active=False,
            ),
        ]
    )
    db.flush()
    db.add_all(
        [
            ServicePriceByRank(service_id=HAIRCUT_ID, master_rank_id=JUNIOR_RANK_ID, price=3000),
            ServicePriceByRank(service_id=WASH_ID, master_rank_id=JUNIOR_RANK_ID, price=1000),
            ServicePriceByRank(service_id=COLORING_ID, master_rank_id=JUNIOR_RANK_ID, price=5000),
            ServicePriceByRank(service_id=ODD_ID, master_rank_id=JUNIOR_RANK_ID, price=500),
            ServicePriceByRank(service_id=HAIRCUT_ID, master_rank_id=SENIOR_RANK_ID, price=4500),
            ServicePriceByRank(service_id=WASH_ID, master_rank_id=SENIOR_RANK_ID, price=1500),
        ]
    )
    for day_of_week in range(5):
        db.add(
            WorkScheduleRule(
                company_id=COMPANY_ID,
                employee_id=MASTER_ID,
                day_of_week=day_of_week,
                is_working_day=True,
                start_time="09:00",
                end_time="18:00",
            )
        )
    db.commit()


def service_booking(
    start_time: str = "10:00",
    service_ids: tuple = (HAIRCUT_ID,),
    date: str = MONDAY,
    master_id: str = MASTER_ID,
    client_id: str = CLIENT_ID,
    comment=None,
) -> ServiceBooking:
    """Helper to create a ServiceBooking with sensible defaults."""
    return ServiceBooking(
        branchId=BRANCH_ID,
        masterEmployeeId=master_id,
        date=date,
        startTime=start_time,
        clientId=client_id,
        comment=comment,
        services=[ServiceItem(serviceId=sid) for sid in service_ids],
    )


def block_booking(start_time: str = "13:00", duration=None, date: str = MONDAY, title=None) -> BlockBooking:
    """Helper to create a BlockBooking."""
    return BlockBooking(
        type="block",
        branchId=BRANCH_ID,
        masterEmployeeId=MASTER_ID,
        date=date,
        startTime=start_time,
        blockDurationMin=duration,
        title=title,
    )
