"""
Multi-yard inventory search endpoints
"""
from fastapi import APIRouter, Depends
from pydantic import AliasChoices, BaseModel, Field

from yardwatch.api.deps import aggregator
from yardwatch.services.aggregator import InventoryAggregator

router = APIRouter(prefix="/api", tags=["search"])


class SearchAllRequest(BaseModel):
    make: str = Field(default="", validation_alias=AliasChoices("VehicleMake", "make"))
    model: str = Field(default="", validation_alias=AliasChoices("VehicleModel", "model"))


class ModelsAllRequest(BaseModel):
    makeName: str = Field(default="", validation_alias=AliasChoices("makeName", "VehicleMake", "make"))


@router.post("/searchAll")
async def search_all(
    request: SearchAllRequest,
    inventory: InventoryAggregator = Depends(aggregator),
):
    """Search every yard for a make and optional model"""
    results = await inventory.search(request.make, request.model)
    return {
        "query": {"make": request.make.strip(), "model": request.model.strip() or None},
        "yards": inventory.yard_summaries(),
        "count": len(results),
        "results": results,
    }


@router.post("/makesAll")
async def makes_all(inventory: InventoryAggregator = Depends(aggregator)):
    """Every make carried by any yard"""
    makes = await inventory.list_makes()
    return {"count": len(makes), "makes": makes}


@router.post("/modelsAll")
async def models_all(
    request: ModelsAllRequest,
    inventory: InventoryAggregator = Depends(aggregator),
):
    """Every model of a make carried by any yard"""
    models = await inventory.list_models(request.makeName)
    return {"makeName": request.makeName.strip(), "count": len(models), "models": models}
