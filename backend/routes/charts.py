from fastapi import APIRouter, Depends
from core.state import AppContext, get_context
from services.statistics import build_chart_data, latest_chart_data

router = APIRouter(prefix="/api/charts", tags=["charts"])

@router.get("/data/{test_id}")
async def chart_data(
    test_id: int,
    context: AppContext = Depends(get_context)
):
    """
    Statistics and chart series for one test.

    Raises:
        NotFoundError: Unknown test
    """
    return {"success": True, "data": await build_chart_data(context.repository, test_id)}

@router.get("/latest")
async def latest(context: AppContext = Depends(get_context)):
    """Results of the most recently finished test"""
    return {"success": True, "data": await latest_chart_data(context.repository)}

@router.get("/tests")
async def finished_tests(
    limit: int = 20,
    context: AppContext = Depends(get_context)
):
    """Finished tests with user and response counts, newest first"""
    return {"success": True, "data": await context.repository.list_finished_tests(limit)}
