from __future__ import annotations

import logging
from typing import Iterator

import pytest

from infraplan.builder import GraphBuilder
from infraplan.catalog import ModuleCatalog
from infraplan.pipeline import Pipeline
from infraplan.policy import PolicyValidator

from tests._fixtures.catalogs import DEFAULT_PARAMETERS, standard_catalog


@pytest.fixture(scope="session")
def catalog() -> ModuleCatalog:
    """The standard catalog shipped under catalogs/."""
    return standard_catalog()


@pytest.fixture
def builder(catalog: ModuleCatalog) -> GraphBuilder:
    return GraphBuilder(catalog, parameters=DEFAULT_PARAMETERS)


@pytest.fixture
def pipeline(catalog: ModuleCatalog, builder: GraphBuilder) -> Pipeline:
    return Pipeline(catalog, builder=builder, validator=PolicyValidator(catalog))


@pytest.fixture(autouse=True)
def _reset_infraplan_logger() -> Iterator[None]:
    """Drop handlers bound to a test's captured streams once the test ends."""
    yield
    logger = logging.getLogger("infraplan")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
