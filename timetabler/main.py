from fastapi import FastAPI, HTTPException
from typing import List

from timetabler.schemas import (
    AnalyzeRequest,
    Conflict,
    ScheduleRequest,
    ScheduleResponse,
    SchedulingResult,
)
from timetabler.services.timetable_service import TimetableService

app = FastAPI(title="Timetable Scheduler")

service = TimetableService()


@app.post("/schedules", response_model=ScheduleResponse)
def create_schedule(payload: ScheduleRequest):
    try:
        run_id, result = service.generate(payload)
        return ScheduleResponse(run_id=run_id, result=result)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@app.get("/schedules/{run_id}", response_model=SchedulingResult)
def get_schedule(run_id: str):
    result = service.get_result(run_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Schedule not found")
    return result


@app.post("/conflicts", response_model=List[Conflict])
def analyze_conflicts(payload: AnalyzeRequest):
    try:
        return service.analyze(payload)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
