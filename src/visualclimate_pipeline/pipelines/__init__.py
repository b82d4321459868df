"""
visualclimate_pipeline.pipelines — stage orchestrators.

Each stage module exports a run() async function and can be invoked on
its own; ``visualclimate-pipeline run all`` chains them in order:

    ingest → derive → report_card → qa

    from visualclimate_pipeline.pipelines import ingest, derive, report_card, qa

    summary = await ingest.run(dry_run=True)
"""
